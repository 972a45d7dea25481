import pytest

from app.shaderhouse.modules.payments.fees import (
    calculate_creator_support_split,
    calculate_donation_split,
    calculate_game_sale_split,
    cents_to_dollars,
    dollars_to_cents,
    format_currency,
)


def test_game_sale_split_default_percent():
    split = calculate_game_sale_split(1999)
    assert split.platform_fee == 300
    assert split.developer_amount == 1699
    assert split.platform_percent == 15
    assert split.developer_percent == 85


def test_split_rounds_half_up_and_sums_to_total():
    # 15% of 10 cents is 1.5 -> 2
    split = calculate_donation_split(10)
    assert split.platform_fee == 2
    assert split.developer_amount == 8
    for amount in (1, 99, 100, 333, 1499, 123457):
        s = calculate_game_sale_split(amount)
        assert s.platform_fee + s.developer_amount == amount


def test_split_custom_percent_and_bounds():
    assert calculate_game_sale_split(1000, 0).developer_amount == 1000
    assert calculate_game_sale_split(1000, 100).platform_fee == 1000
    with pytest.raises(ValueError):
        calculate_game_sale_split(-1)
    with pytest.raises(ValueError):
        calculate_game_sale_split(100, 101)


def test_creator_support_split():
    split = calculate_creator_support_split(1499, 3)
    assert split.platform_fee == 225
    assert split.developer_pool == 1274
    assert split.per_developer == 424


def test_creator_support_split_without_developers_goes_to_platform():
    split = calculate_creator_support_split(1499, 0)
    assert split.platform_fee == 1499
    assert split.developer_pool == 0
    assert split.per_developer == 0


def test_currency_helpers():
    assert format_currency(1999) == "$19.99"
    assert format_currency(0) == "$0.00"
    assert format_currency(-250) == "-$2.50"
    assert dollars_to_cents("19.99") == 1999
    assert dollars_to_cents(0.125) == 13
    assert cents_to_dollars(1550) == 15.5
