"""initial schema

Revision ID: a7c3e91f0b2d
Revises:
Create Date: 2026-09-28 10:12:41.208317

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a7c3e91f0b2d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now())


def _user_fk(name: str, *, ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def _game_fk(name: str = "game_id", *, ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("games.id", ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    """Create every Shader House table."""
    # ---------- Accounts ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="GAMER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("account_status", sa.String(32), nullable=False, server_default="ACTIVE"),
        sa.Column("suspended_until", sa.DateTime(), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(), nullable=True),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("two_factor_secret", sa.String(64), nullable=True),
        sa.Column("backup_codes_json", sa.Text(), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("badges_json", sa.Text(), nullable=True),
        sa.Column("last_daily_login_on", sa.Date(), nullable=True),
        sa.Column("subscription_tier", sa.String(32), nullable=False, server_default="FREE"),
        sa.Column("subscription_status", sa.String(32), nullable=False, server_default="ACTIVE"),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("subscription_started_at", sa.DateTime(), nullable=True),
        sa.Column("subscription_ends_at", sa.DateTime(), nullable=True),
        sa.Column("notify_in_app", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_beta", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_feedback", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_game_updates", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_achievements", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_subscription", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_devlogs", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_users_role", "users", ["role"])
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _created_at(),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        _user_fk("actor_user_id", ondelete="SET NULL", nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_events_action", "audit_events", ["action"])
    op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])

    op.create_table(
        "verification_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        _created_at(),
    )
    op.create_index("idx_verification_tokens_user_type", "verification_tokens", ["user_id", "type"])

    op.create_table(
        "platform_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        _updated_at(),
        _user_fk("updated_by_user_id", ondelete="SET NULL", nullable=True),
    )

    op.create_table(
        "developer_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("studio_name", sa.String(200), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("developer_type", sa.String(16), nullable=False, server_default="INDIE"),
        sa.Column("team_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("has_publisher", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("owns_ip", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("funding_sources_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("company_type", sa.String(16), nullable=False, server_default="NONE"),
        sa.Column("evidence_links_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("attest_indie", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_indie_eligible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("eligibility_reasons_json", sa.Text(), nullable=True),
        sa.Column("verification_status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        _user_fk("reviewed_by_user_id", ondelete="SET NULL", nullable=True),
        sa.Column("stripe_account_id", sa.String(255), nullable=True, unique=True),
        sa.Column("payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_developer_profiles_verification_status", "developer_profiles", ["verification_status"])

    # ---------- Catalog ----------
    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("developer_id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("tagline", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("cover_url", sa.Text(), nullable=False),
        sa.Column("screenshots_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("platforms_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("external_url", sa.Text(), nullable=False),
        sa.Column("release_status", sa.String(16), nullable=False, server_default="RELEASED"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_games_developer_id", "games", ["developer_id"])
    op.create_index("idx_games_published_created", "games", ["is_published", "created_at"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(40), nullable=False),
        sa.Column("slug", sa.String(40), nullable=False, unique=True),
    )
    op.create_table(
        "game_tags",
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer(), primary_key=True),
        _game_fk(),
        _user_fk("user_id"),
        sa.Column("stars", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("game_id", "user_id", name="uq_ratings_game_user"),
    )
    op.create_table(
        "favorites",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        _game_fk(),
        _created_at(),
        sa.UniqueConstraint("user_id", "game_id", name="uq_favorites_user_game"),
    )

    # ---------- Payments ----------
    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        _game_fk(),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("developer_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("stripe_session_id", sa.String(255), nullable=True, unique=True),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True, unique=True),
        _created_at(),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "game_id", name="uq_purchases_user_game"),
    )
    op.create_index("idx_purchases_game_created", "purchases", ["game_id", "created_at"])

    op.create_table(
        "tips",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("from_user_id", ondelete="SET NULL", nullable=True),
        _user_fk("developer_id"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("developer_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("stripe_session_id", sa.String(255), nullable=True, unique=True),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True, unique=True),
        _created_at(),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
    )
    op.create_index("idx_tips_developer_id", "tips", ["developer_id"])

    op.create_table(
        "publishing_fees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False, unique=True),
        _user_fk("developer_id"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("stripe_session_id", sa.String(255), nullable=True, unique=True),
        _created_at(),
    )

    op.create_table(
        "developer_revenue",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("developer_id"),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("direct_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("units_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tips_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("creator_support_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("refunds_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint("developer_id", "month", name="uq_developer_revenue_month"),
    )

    # ---------- Subscriptions ----------
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("tier", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True, unique=True),
        sa.Column("last_invoice_id", sa.String(255), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        _created_at(),
    )
    op.create_index("idx_subscriptions_user_id", "subscriptions", ["user_id"])

    op.create_table(
        "developer_supports",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("supporter_id"),
        _user_fk("developer_id"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("supporter_id", "developer_id", name="uq_developer_supports_pair"),
    )
    op.create_index("idx_developer_supports_developer_id", "developer_supports", ["developer_id"])

    # ---------- Beta ----------
    op.create_table(
        "beta_testers",
        sa.Column("id", sa.Integer(), primary_key=True),
        _game_fk(),
        _user_fk("user_id"),
        sa.Column("bugs_reported", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("game_id", "user_id", name="uq_beta_testers_game_user"),
    )
    op.create_table(
        "beta_feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        _game_fk(),
        _user_fk("user_id"),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(16), nullable=True),
        sa.Column("device_info", sa.Text(), nullable=True),
        sa.Column("screenshot_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="NEW"),
        sa.Column("developer_response", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_beta_feedback_game_status", "beta_feedback", ["game_id", "status"])

    op.create_table(
        "beta_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        _game_fk(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("reward_points", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("is_optional", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("idx_beta_tasks_game_order", "beta_tasks", ["game_id", "order"])

    op.create_table(
        "beta_task_completions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(), sa.ForeignKey("beta_tasks.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("feedback_id", sa.Integer(), sa.ForeignKey("beta_feedback.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("report", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("task_id", "user_id", name="uq_beta_task_completions_task_user"),
    )

    # ---------- Rewards ----------
    op.create_table(
        "reward_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("idx_reward_history_user_created", "reward_history", ["user_id", "created_at"])

    # ---------- Devlogs ----------
    op.create_table(
        "devlogs",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("developer_id"),
        _game_fk(ondelete="SET NULL", nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.String(500), nullable=True),
        sa.Column("cover_url", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=False, server_default="UPDATE"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_devlogs_published", "devlogs", ["is_published", "published_at"])
    op.create_index("idx_devlogs_developer_id", "devlogs", ["developer_id"])

    op.create_table(
        "devlog_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("devlog_id", sa.Integer(), sa.ForeignKey("devlogs.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("devlog_comments.id", ondelete="CASCADE"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_devlog_comments_devlog_created", "devlog_comments", ["devlog_id", "created_at"])

    op.create_table(
        "devlog_likes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("devlog_id", sa.Integer(), sa.ForeignKey("devlogs.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        _created_at(),
        sa.UniqueConstraint("devlog_id", "user_id", name="uq_devlog_likes_devlog_user"),
    )
    op.create_table(
        "devlog_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("subscriber_id"),
        _user_fk("developer_id"),
        sa.Column("notify_new_post", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint("subscriber_id", "developer_id", name="uq_devlog_subscriptions_pair"),
    )

    # ---------- Discussions ----------
    op.create_table(
        "discussion_threads",
        sa.Column("id", sa.Integer(), primary_key=True),
        _game_fk(),
        sa.Column("game_name", sa.String(200), nullable=False),
        _user_fk("author_id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="GENERAL"),
        sa.Column("media_urls_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("post_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "idx_discussion_threads_game_activity", "discussion_threads", ["game_id", "is_pinned", "last_activity_at"]
    )

    op.create_table(
        "discussion_posts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("thread_id", sa.Integer(), sa.ForeignKey("discussion_threads.id", ondelete="CASCADE"), nullable=False),
        _user_fk("author_id"),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("discussion_posts.id", ondelete="CASCADE"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("upvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvotes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_helpful", sa.Boolean(), nullable=False, server_default=sa.false()),
        _user_fk("helpful_marked_by_id", ondelete="SET NULL", nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_discussion_posts_thread_created", "discussion_posts", ["thread_id", "created_at"])

    op.create_table(
        "discussion_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("thread_id", sa.Integer(), sa.ForeignKey("discussion_threads.id", ondelete="CASCADE"), nullable=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("discussion_posts.id", ondelete="CASCADE"), nullable=True),
        sa.Column("value", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "thread_id", name="uq_discussion_votes_user_thread"),
        sa.UniqueConstraint("user_id", "post_id", name="uq_discussion_votes_user_post"),
    )

    # ---------- Notifications and moderation ----------
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("type", sa.String(48), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        _created_at(),
    )
    op.create_index("idx_notifications_user_read_created", "notifications", ["user_id", "is_read", "created_at"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("reporter_id"),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        _game_fk("reported_game_id", ondelete="SET NULL", nullable=True),
        _user_fk("reported_user_id", ondelete="SET NULL", nullable=True),
        sa.Column("reported_review_id", sa.Integer(), sa.ForeignKey("ratings.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "reported_thread_id",
            sa.Integer(),
            sa.ForeignKey("discussion_threads.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("reported_post_id", sa.Integer(), sa.ForeignKey("discussion_posts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("action_taken", sa.String(32), nullable=True),
        _user_fk("resolved_by_user_id", ondelete="SET NULL", nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("idx_reports_status_created", "reports", ["status", "created_at"])
    op.create_index("idx_reports_reporter_id", "reports", ["reporter_id"])


def downgrade() -> None:
    for table in (
        "reports",
        "notifications",
        "discussion_votes",
        "discussion_posts",
        "discussion_threads",
        "devlog_subscriptions",
        "devlog_likes",
        "devlog_comments",
        "devlogs",
        "reward_history",
        "beta_task_completions",
        "beta_tasks",
        "beta_feedback",
        "beta_testers",
        "developer_supports",
        "subscriptions",
        "developer_revenue",
        "publishing_fees",
        "tips",
        "purchases",
        "favorites",
        "ratings",
        "game_tags",
        "tags",
        "games",
        "developer_profiles",
        "platform_settings",
        "verification_tokens",
        "audit_events",
        "users",
    ):
        op.drop_table(table)
