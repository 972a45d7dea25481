from app.shaderhouse.modules.developers.eligibility import check_indie_eligibility


def _base(**overrides):
    data = {"team_size": 3, "has_publisher": False, "owns_ip": True, "company_type": "LLC", "funding_sources": ["SELF"]}
    data.update(overrides)
    return data


def test_small_self_funded_team_is_eligible():
    result = check_indie_eligibility(_base())
    assert result.is_eligible
    assert result.reasons == []
    assert result.warnings == []


def test_team_size_limit_is_inclusive():
    assert check_indie_eligibility(_base(team_size=10)).is_eligible
    result = check_indie_eligibility(_base(team_size=11))
    assert not result.is_eligible
    assert "exceeds indie limit of 10" in result.reasons[0]
    assert result.warnings


def test_publisher_and_ip_reasons():
    result = check_indie_eligibility(_base(has_publisher=True, owns_ip=False, funding_sources=["MAJOR_PUBLISHER"]))
    assert not result.is_eligible
    assert len(result.reasons) == 3


def test_corporation_only_warns():
    result = check_indie_eligibility(_base(company_type="CORP"))
    assert result.is_eligible
    assert len(result.warnings) == 1


def test_vc_with_large_team_adds_warning():
    result = check_indie_eligibility(_base(team_size=20, funding_sources=["VC"]))
    assert any("VC funding" in w for w in result.warnings)
    assert result.to_dict()["is_eligible"] is False
