import pytest

from email_auth_verifier.models import DkimSelectorVerdict
from email_auth_verifier.records import (
    analyze_dkim_record,
    analyze_dmarc,
    analyze_spf,
    parse_dmarc,
    parse_spf,
    summarize_dkim,
)

from .conftest import GOOD_DKIM, GOOD_DMARC, GOOD_SPF

# ---------- SPF ----------


def test_spf_not_found_ignores_other_txt_records():
    verdict = analyze_spf(["google-site-verification=abc", "V=SPF1 -all"])
    assert not verdict.found
    assert not verdict.valid
    assert verdict.record is None
    assert verdict.issues == ["No SPF record found"]
    assert any("v=spf1" in r for r in verdict.recommendations)


def test_spf_valid_record_with_hard_fail():
    verdict = analyze_spf(["v=spf1 ip4:192.0.2.0/24 include:_spf.google.com -all"])
    assert verdict.found
    assert verdict.valid
    assert verdict.issues == []
    assert verdict.record == "v=spf1 ip4:192.0.2.0/24 include:_spf.google.com -all"


def test_spf_multiple_records_are_flagged_not_merged():
    verdict = analyze_spf(["v=spf1 -all", "v=spf1 include:_spf.google.com ~all"])
    assert verdict.found
    assert not verdict.valid
    assert verdict.issues == ["Multiple SPF records found - only one is allowed"]
    assert verdict.recommendations == ["Merge all SPF records into a single record"]
    assert verdict.record == "v=spf1 -all"


def test_spf_missing_all_mechanism():
    verdict = analyze_spf(["v=spf1 include:_spf.google.com"])
    assert verdict.found
    assert not verdict.valid
    assert verdict.issues == ["SPF record missing 'all' mechanism"]


@pytest.mark.parametrize(
    "record",
    ["v=spf1 +all", "v=spf1 include:_spf.google.com +all", "v=spf1 +all ~all"],
)
def test_spf_plus_all_is_always_reported(record):
    verdict = analyze_spf([record])
    assert "SPF uses +all which allows any server to send mail" in verdict.issues
    assert not verdict.valid


def test_spf_plus_all_without_terminal_all_reports_both_issues():
    verdict = analyze_spf(["v=spf1 +all"])
    assert verdict.issues == [
        "SPF record missing 'all' mechanism",
        "SPF uses +all which allows any server to send mail",
    ]


def test_spf_lookup_limit():
    includes = " ".join(f"include:spf{i}.example.net" for i in range(11))
    verdict = analyze_spf([f"v=spf1 {includes} -all"])
    assert verdict.issues == ["SPF exceeds 10 DNS lookup limit (found 11)"]
    assert verdict.recommendations == ["Flatten your SPF record or reduce includes"]


def test_spf_exactly_ten_lookups_is_fine():
    includes = " ".join(f"include:spf{i}.example.net" for i in range(10))
    assert analyze_spf([f"v=spf1 {includes} -all"]).valid


def test_parse_spf_breakdown():
    parsed = parse_spf("v=spf1 include:a.example redirect=b.example mx:c.example -all")
    assert parsed["includes"] == ["a.example"]
    assert parsed["redirect"] == "b.example"
    assert parsed["lookup_mechanisms"] == ["include:", "redirect=", "mx:"]
    assert parsed["all_mechanism"] == "-all"


@pytest.mark.parametrize(
    "record,expected",
    [
        ("v=spf1 include:all.example.net -all", "-all"),
        ("v=spf1 redirect=mail.all.example", None),
        ("v=spf1 mx ~ALL", "~ALL"),
    ],
)
def test_parse_spf_all_mechanism_ignores_domain_labels(record, expected):
    assert parse_spf(record)["all_mechanism"] == expected


# ---------- DKIM ----------


def test_dkim_record_not_found():
    verdict = analyze_dkim_record("s1", [])
    assert verdict == DkimSelectorVerdict(
        selector="s1",
        found=False,
        valid=False,
        issues=['No DKIM record found for selector "s1"'],
    )


def test_dkim_valid_record():
    verdict = analyze_dkim_record("google", [GOOD_DKIM])
    assert verdict.found
    assert verdict.valid
    assert verdict.issues == []
    assert verdict.record == GOOD_DKIM


def test_dkim_record_is_truncated_for_display():
    record = "v=DKIM1; k=rsa; p=" + "A" * 300
    verdict = analyze_dkim_record("google", [record])
    assert verdict.valid
    assert verdict.record == record[:100] + "..."


@pytest.mark.parametrize("record", ["v=DKIM1; k=rsa; p=", "v=DKIM1; p=; t=y", "v=DKIM1; p=   "])
def test_dkim_empty_public_key_is_flagged_as_revoked(record):
    verdict = analyze_dkim_record("old", [record])
    assert verdict.found
    assert not verdict.valid
    assert verdict.issues == ["Public key is empty (record may be revoked)"]


def test_dkim_missing_version_and_key():
    verdict = analyze_dkim_record("bad", ["k=rsa; t=s"])
    assert verdict.issues == ["Missing version tag (v=DKIM1)", "Missing public key (p=)"]


def test_summarize_dkim_nothing_found():
    summary = summarize_dkim([analyze_dkim_record("a", []), analyze_dkim_record("b", [])])
    assert not summary.found
    assert not summary.valid
    assert summary.valid_count == 0
    assert summary.total_checked == 2
    assert summary.issues == ["No DKIM records found for any of the specified selectors"]
    assert len(summary.recommendations) == 2


def test_summarize_dkim_found_but_none_valid():
    summary = summarize_dkim([analyze_dkim_record("old", ["v=DKIM1; p="])])
    assert summary.found
    assert not summary.valid
    assert summary.issues == [
        "DKIM records found but none are valid",
        "old: Public key is empty (record may be revoked)",
    ]
    assert summary.recommendations == ["Check and fix the issues with your DKIM records"]


def test_summarize_dkim_partially_valid():
    summary = summarize_dkim(
        [
            analyze_dkim_record("google", [GOOD_DKIM]),
            analyze_dkim_record("bad", ["k=rsa"]),
            analyze_dkim_record("missing", []),
        ]
    )
    assert summary.found
    assert summary.valid
    assert summary.valid_count == 1
    assert summary.total_checked == 3
    assert [s.selector for s in summary.selectors] == ["google", "bad", "missing"]
    assert summary.issues == [
        "1 DKIM selector(s) have issues",
        "bad: Missing version tag (v=DKIM1), Missing public key (p=)",
    ]
    assert summary.recommendations == ["Review and fix invalid DKIM records"]


# ---------- DMARC ----------


def test_dmarc_not_found():
    verdict = analyze_dmarc(["v=spf1 -all"])
    assert not verdict.found
    assert not verdict.valid
    assert verdict.policy is None
    assert verdict.issues == ["No DMARC record found"]
    assert "Start with: v=DMARC1; p=none; rua=mailto:dmarc@yourdomain.com" in verdict.recommendations


def test_dmarc_reject_is_valid():
    verdict = analyze_dmarc([GOOD_DMARC])
    assert verdict.found
    assert verdict.valid
    assert verdict.policy == "reject"
    assert verdict.issues == []
    assert verdict.recommendations == ["Consider adding sp= for subdomain policy"]


def test_dmarc_reject_with_subdomain_policy_has_no_recommendation():
    verdict = analyze_dmarc(["v=DMARC1; p=reject; sp=reject; rua=mailto:d@example.com"])
    assert verdict.recommendations == []


def test_dmarc_quarantine_is_valid():
    verdict = analyze_dmarc(["v=DMARC1; p=quarantine; rua=mailto:d@example.com"])
    assert verdict.valid
    assert verdict.policy == "quarantine"


@pytest.mark.parametrize(
    "record",
    ["v=DMARC1; p=none; rua=mailto:d@example.com", "v=DMARC1; p=none"],
)
def test_dmarc_none_policy_is_never_valid(record):
    verdict = analyze_dmarc([record])
    assert verdict.found
    assert not verdict.valid
    assert verdict.policy == "none"
    assert "DMARC policy is set to 'none' (monitoring only)" in verdict.issues


def test_dmarc_missing_policy_and_reporting():
    verdict = analyze_dmarc(["v=DMARC1; pct=100"])
    assert verdict.found
    assert not verdict.valid
    assert verdict.policy is None
    assert verdict.issues == [
        "DMARC record missing policy (p=)",
        "No aggregate reporting email configured",
    ]


def test_dmarc_subdomain_policy_is_not_mistaken_for_policy():
    verdict = analyze_dmarc(["v=DMARC1; sp=none; p=reject; rua=mailto:d@example.com"])
    assert verdict.policy == "reject"
    assert verdict.valid


def test_dmarc_uses_first_record():
    verdict = analyze_dmarc(["v=DMARC1; p=quarantine; rua=mailto:a@example.com", GOOD_DMARC])
    assert verdict.policy == "quarantine"


def test_dmarc_enforcing_policies_are_configurable():
    verdict = analyze_dmarc([GOOD_DMARC], enforcing_policies={"reject"})
    assert verdict.valid
    verdict = analyze_dmarc(
        ["v=DMARC1; p=quarantine; rua=mailto:d@example.com"], enforcing_policies={"reject"}
    )
    assert not verdict.valid


def test_parse_dmarc_tags():
    assert parse_dmarc("v=DMARC1; p=reject; RUA=mailto:d@example.com") == {
        "v": "DMARC1",
        "p": "reject",
        "rua": "mailto:d@example.com",
    }


# ---------- general ----------


@pytest.mark.parametrize(
    "values",
    [
        [""],
        ["v=spf1"],
        ["v=DMARC1"],
        ["v=DKIM1; p"],
        ["=;=;;==", "\x00\xff", "v=spf1 " * 500],
    ],
)
def test_parsers_never_raise_and_are_deterministic(values):
    for analyze in (analyze_spf, analyze_dmarc, lambda v: analyze_dkim_record("s", v)):
        first = analyze(values)
        second = analyze(list(values))
        assert first.model_dump_json() == second.model_dump_json()


def test_spf_happy_path_record_from_fixture_is_valid():
    assert analyze_spf([GOOD_SPF]).valid
