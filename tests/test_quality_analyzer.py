from hypothesis import given, strategies as st

from codegate.config import ThresholdConfig
from codegate.models.pull_request import SizeStats
from codegate.services.quality_analyzer import MAX_ISSUES, QualityAnalyzer, analyze, derive_seed

sizes = st.builds(
    SizeStats,
    additions=st.integers(min_value=0, max_value=10_000),
    deletions=st.integers(min_value=0, max_value=10_000),
    changed_files=st.integers(min_value=0, max_value=500),
)
pr_numbers = st.integers(min_value=1, max_value=100_000)


@given(size=sizes, pr_number=pr_numbers)
def test_header_metrics_are_deterministic(size, pr_number):
    first = analyze(size, pr_number, ThresholdConfig())
    second = analyze(size, pr_number, ThresholdConfig())

    assert first.header() == second.header()
    assert first.issues == second.issues
    assert first.severity == second.severity


@given(size=sizes, pr_number=pr_numbers)
def test_values_stay_in_range(size, pr_number):
    report = analyze(size, pr_number, ThresholdConfig())

    assert 0 <= report.bugs.value < 5
    assert 0 <= report.vulnerabilities.value < 3
    assert 0 <= report.code_smells.value < 20
    assert 70 <= report.coverage.value <= 95
    assert 0 <= report.duplication.value <= 5
    assert 0 <= report.security_hotspots.value < 4
    assert 0 <= report.severity["blocker"].value < 2
    assert 0 <= report.severity["critical"].value < 3
    assert 0 <= report.severity["major"].value < 8
    assert 0 <= report.severity["minor"].value < 15
    assert len(report.issues) <= MAX_ISSUES


@given(size=sizes, pr_number=pr_numbers)
def test_gate_status_follows_violations(size, pr_number):
    report = analyze(size, pr_number, ThresholdConfig())
    assert (report.gate_status == "ERROR") == bool(report.violations)


def test_issue_types_are_sliced_in_order():
    report = analyze(SizeStats(120, 30, 4), 7, ThresholdConfig())
    bugs = int(report.bugs.value)
    vulns = int(report.vulnerabilities.value)
    types = [issue.type for issue in report.issues]

    expected = (["BUG"] * bugs + ["VULNERABILITY"] * vulns + ["CODE_SMELL"] * 20)[: len(types)]
    assert types == expected


def test_lenient_thresholds_pass_the_gate():
    lenient = ThresholdConfig(
        bugs=100,
        vulnerabilities=100,
        code_smells=100,
        security_hotspots=100,
        coverage_min=0,
        duplicated_lines_max=100,
        blocker_issues=100,
        critical_issues=100,
    )
    report = QualityAnalyzer(lenient).analyze(SizeStats(5, 5, 1), 3)

    assert report.gate_status == "OK"
    assert report.violations == []
    assert all(condition.status == "OK" for condition in report.conditions)


def test_strict_coverage_minimum_is_violated():
    report = analyze(SizeStats(5, 5, 1), 3, ThresholdConfig(coverage_min=100))

    assert report.coverage.exceeded is True
    assert any(violation.startswith("Coverage:") for violation in report.violations)
    assert report.gate_status == "ERROR"


def test_total_issues_counts_bugs_vulnerabilities_smells_and_hotspots():
    report = analyze(SizeStats(10, 20, 3), 42, ThresholdConfig())
    assert report.total_issues == sum(
        int(check.value)
        for check in (report.bugs, report.vulnerabilities, report.code_smells, report.security_hotspots)
    )


def test_seed_depends_on_every_input():
    base = derive_seed(SizeStats(10, 20, 3), 42)
    assert derive_seed(SizeStats(11, 20, 3), 42) != base
    assert derive_seed(SizeStats(10, 21, 3), 42) != base
    assert derive_seed(SizeStats(10, 20, 4), 42) != base
    assert derive_seed(SizeStats(10, 20, 3), 43) != base


def test_report_links_use_project_key():
    report = analyze(SizeStats(1, 1, 1), 9, ThresholdConfig())
    assert report.project_key == "pr-9"
    assert report.links["dashboard"].endswith("id=pr-9")
