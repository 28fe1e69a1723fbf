import pytest
from cvss import CVSS2, CVSS3, CVSS4

from advisory_matcher import cvss
from advisory_matcher.cvss import CvssVersion
from advisory_matcher.errors import ParseError
from advisory_matcher.models import Severity


def _score(vector: str):
    return cvss.score(cvss.parse(vector))


def test_v31_critical_example():
    result = _score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H")
    assert result.version == CvssVersion.V3_1
    assert result.base == 9.8
    assert result.severity == Severity.CRITICAL
    assert result.temporal is None
    assert result.environmental is None


@pytest.mark.parametrize(
    "vector,expected,severity",
    [
        ("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:C/C:H/I:H/A:H", 10.0, Severity.CRITICAL),
        ("CVSS:3.1/AV:N/AC:L/PR:N/UI:R/S:C/C:L/I:L/A:N", 6.1, Severity.MEDIUM),
        ("CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H", 9.8, Severity.CRITICAL),
        ("CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:N/A:N", 5.5, Severity.MEDIUM),
        ("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:N/I:N/A:N", 0.0, Severity.NONE),
    ],
)
def test_v3_base_scores(vector, expected, severity):
    result = _score(vector)
    assert result.base == expected
    assert result.severity == severity


def test_v31_temporal_score():
    result = _score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/E:U/RL:O/RC:C")
    assert result.base == 9.8
    assert result.temporal == 8.5
    assert result.value == 8.5
    assert result.severity == Severity.CRITICAL
    assert result.overall_severity == Severity.HIGH


def test_v3_environmental_modified_metrics_lower_the_score():
    result = _score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/MAV:L")
    assert result.environmental is not None
    assert result.environmental < result.base


@pytest.mark.parametrize(
    "vector,expected,severity",
    [
        ("CVSS:2.0/AV:N/AC:L/Au:N/C:P/I:P/A:P", 7.5, Severity.HIGH),
        ("CVSS:2.0/AV:N/AC:L/Au:N/C:C/I:C/A:C", 10.0, Severity.HIGH),
        ("CVSS:2.0/AV:N/AC:M/Au:N/C:P/I:N/A:N", 4.3, Severity.MEDIUM),
    ],
)
def test_v2_base_scores(vector, expected, severity):
    result = _score(vector)
    assert result.base == expected
    assert result.severity == severity


def test_v4_known_scores():
    base = "CVSS:4.0/AV:N/AC:L/AT:N/PR:N/UI:N/VC:H/VI:H/VA:H"
    assert _score(base + "/SC:N/SI:N/SA:N").base == 9.3
    assert _score(base + "/SC:H/SI:H/SA:H").base == 10.0
    none = _score("CVSS:4.0/AV:N/AC:L/AT:N/PR:N/UI:N/VC:N/VI:N/VA:N/SC:N/SI:N/SA:N")
    assert none.base == 0.0
    assert none.severity == Severity.NONE


def test_v4_threat_score_is_lower_for_unreported_exploit():
    result = _score("CVSS:4.0/AV:N/AC:L/AT:N/PR:N/UI:N/VC:H/VI:H/VA:H/SC:N/SI:N/SA:N/E:U")
    assert result.base == 9.3
    assert result.temporal is not None
    assert result.temporal < result.base


def test_parse_serialize_round_trip():
    text = "CVSS:3.1/AV:N/AC:H/PR:L/UI:R/S:C/C:L/I:N/A:H/E:P/CR:H"
    vector = cvss.parse(text)
    assert vector.to_string() == text
    assert cvss.parse(vector.to_string()) == vector


def test_parse_normalizes_metric_order():
    vector = cvss.parse("CVSS:3.1/C:H/I:H/A:H/AV:N/AC:L/PR:N/UI:N/S:U")
    assert str(vector) == "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"


@pytest.mark.parametrize(
    "vector",
    [
        "AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "CVSS:9.9/AV:N",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/A:H",
        "CVSS:3.1/AV:Q/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/ZZ:1",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A",
        "",
    ],
)
def test_parse_rejects_invalid_vectors(vector):
    with pytest.raises(ParseError):
        cvss.parse(vector)


def test_sub_scores():
    v31 = _score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H")
    assert (v31.impact, v31.exploitability) == (5.9, 3.9)
    v2 = _score("CVSS:2.0/AV:N/AC:L/Au:N/C:P/I:P/A:P")
    assert (v2.impact, v2.exploitability) == (6.4, 10.0)


@pytest.mark.parametrize(
    "vector",
    [
        "CVSS:2.0/AV:N/AC:L/Au:N/C:P/I:P/A:P/E:ND/RL:ND/RC:ND",
        "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H/E:X/RL:X",
        "CVSS:4.0/AV:N/AC:L/AT:N/PR:N/UI:N/VC:H/VI:H/VA:H/SC:N/SI:N/SA:N/E:X/CR:X",
    ],
)
def test_not_defined_groups_leave_scores_unset(vector):
    result = _score(vector)
    assert result.temporal is None
    assert result.environmental is None
    assert result.value == result.base


@pytest.mark.parametrize(
    "vector,temporal",
    [
        ("CVSS:2.0/AV:A/AC:M/Au:S/C:C/I:C/A:P/E:H/RL:W/RC:C", 6.7),
        ("CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:C/C:H/I:H/A:H/RC:U", 9.2),
    ],
)
def test_temporal_rounding_ties(vector, temporal):
    assert _score(vector).temporal == temporal


def test_v4_rounding_tie():
    result = _score("CVSS:4.0/AV:N/AC:H/AT:P/PR:H/UI:A/VC:N/VI:H/VA:L/SC:L/SI:L/SA:N")
    assert result.base == 5.7
    assert result.severity == Severity.MEDIUM


@pytest.mark.parametrize(
    "vector",
    [
        "CVSS:3.1/AV:N/AC:H/PR:L/UI:R/S:C/C:L/I:N/A:H/E:P/RL:T/RC:R",
        "CVSS:3.1/AV:A/AC:L/PR:H/UI:N/S:U/C:L/I:L/A:L/CR:H/MAV:N/MPR:N",
        "CVSS:3.1/AV:L/AC:L/PR:L/UI:N/S:U/C:H/I:H/A:H/MS:C/MC:H/IR:L",
        "CVSS:3.0/AV:N/AC:L/PR:L/UI:N/S:U/C:L/I:N/A:N",
        "CVSS:3.0/AV:N/AC:L/PR:N/UI:N/S:C/C:H/I:H/A:H/RC:U",
    ],
)
def test_v3_matches_reference_library(vector):
    reference = CVSS3(vector)
    result = _score(vector)
    assert result.base == float(reference.base_score)
    if result.temporal is not None:
        assert result.temporal == float(reference.temporal_score)
    if result.environmental is not None:
        assert result.environmental == float(reference.environmental_score)


@pytest.mark.parametrize(
    "vector",
    [
        "AV:N/AC:M/Au:S/C:P/I:N/A:C/E:POC/RL:OF/RC:UR",
        "AV:L/AC:H/Au:M/C:C/I:C/A:N",
        "AV:A/AC:L/Au:N/C:N/I:P/A:N/E:F/RL:W/RC:C",
        "AV:A/AC:M/Au:S/C:C/I:C/A:P/E:H/RL:W/RC:C",
        "AV:N/AC:L/Au:N/C:P/I:P/A:P/CDP:H/TD:H/CR:H/IR:H/AR:H",
        "AV:N/AC:M/Au:N/C:C/I:N/A:N/E:U/RL:TF/RC:UC/CDP:LM/TD:M/CR:L",
    ],
)
def test_v2_matches_reference_library(vector):
    reference = CVSS2(vector)
    result = _score("CVSS:2.0/" + vector)
    assert (result.base, result.temporal, result.environmental) == reference.scores()


@pytest.mark.parametrize(
    "base",
    [
        "CVSS:4.0/AV:N/AC:H/AT:P/PR:H/UI:A/VC:N/VI:H/VA:L/SC:L/SI:L/SA:N",
        "CVSS:4.0/AV:L/AC:L/AT:N/PR:L/UI:P/VC:H/VI:L/VA:N/SC:N/SI:N/SA:N",
        "CVSS:4.0/AV:A/AC:H/AT:N/PR:N/UI:N/VC:L/VI:L/VA:L/SC:H/SI:H/SA:L",
    ],
)
def test_v4_matches_reference_library(base):
    threat = base + "/E:P"
    environmental = threat + "/CR:H/MAV:P/MSI:S"
    result = _score(environmental)
    assert result.base == CVSS4(base).base_score
    assert result.temporal == CVSS4(threat).base_score
    assert result.environmental == CVSS4(environmental).base_score
