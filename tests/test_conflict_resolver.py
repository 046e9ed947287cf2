import pytest
from conftest import ai_client_replying, pull_detail

from codegate.ai_client import AIReviewEngine
from codegate.config import AIConfig
from codegate.errors import NotFoundError
from codegate.models.conflict import ConflictFile
from codegate.models.pull_request import ChangedFile
from codegate.services.conflict_resolver import MergeConflictResolver, classify_files, detect_business_logic
from codegate.stores import InMemoryResolutionStore

IMPORTS_ONLY_REPLY = (
    '{"hasBusinessLogic": false, "conflictType": "imports", "recommendation": "ai_assisted", '
    '"reasoning": "Only import order differs", "canAutoResolve": true, "resolvedContent": "import a"}'
)


@pytest.fixture
def resolutions():
    return InMemoryResolutionStore()


@pytest.fixture
def resolver(repository, resolutions):
    return MergeConflictResolver(repository, resolutions)


def test_java_class_is_business_logic_and_readme_is_not():
    flagged = classify_files(
        [
            ChangedFile("src/Calculator.java", "modified", patch="+public class Calculator {\n+}"),
            ChangedFile("README.md", "modified", patch="+class Calculator docs"),
            ChangedFile("src/New.java", "added", patch="+class New {}"),
        ]
    )

    assert [(file.filename, file.has_business_logic) for file in flagged] == [
        ("src/Calculator.java", True),
        ("README.md", False),
    ]


@pytest.mark.parametrize(
    "filename, patch, expected",
    [
        ("web/app.ts", "+export function render() {}", True),
        ("web/app.tsx", "+const handler = (event) => {", True),
        ("svc/api.py", "+def handle(request):", True),
        ("svc/api.go", "+func Handle(w http.ResponseWriter) {", True),
        ("svc/types.ts", "+interface Props {", True),
        ("svc/config.py", "+TIMEOUT = 30", False),
        ("styles/site.css", "+.class { color: red }", False),
        ("src/Empty.java", None, False),
    ],
)
def test_detect_business_logic(filename, patch, expected):
    assert detect_business_logic(filename, patch) is expected


@pytest.mark.asyncio
async def test_clean_pull_request_has_no_conflicts(resolver, fake_github):
    result = await resolver.check_conflicts(7)

    assert result.ok
    assert result.value.has_conflicts is False
    assert result.value.files == []
    assert not any(request.url.path.endswith("/files") for request in fake_github.requests)


@pytest.mark.asyncio
async def test_dirty_pull_request_flags_files(resolver, fake_github):
    fake_github.pulls[7] = pull_detail(7, mergeable=False, mergeable_state="dirty")

    result = await resolver.check_conflicts(7)

    assert result.ok and result.value.has_conflicts
    assert {file.filename: file.has_business_logic for file in result.value.files} == {
        "src/Calculator.java": True,
        "README.md": False,
    }


@pytest.mark.asyncio
async def test_check_conflicts_reports_failures(resolver):
    result = await resolver.check_conflicts(404)

    assert not result.ok
    assert result.error_kind == "not_found"


@pytest.mark.asyncio
async def test_ai_assisted_is_refused_for_business_logic(resolver, resolutions):
    file = ConflictFile("src/Calculator.java", has_business_logic=True)

    refused = await resolver.resolve(7, file, "ai_assisted", "merged code")
    accepted = await resolver.resolve(7, file, "manual", "hand merged")

    assert not refused.ok
    assert refused.error_kind == "policy_blocked"
    assert accepted.ok
    assert (await resolutions.get(7, file.filename)).strategy == "manual"


@pytest.mark.asyncio
async def test_resolved_is_terminal(resolver, resolutions):
    file = ConflictFile("README.md", has_business_logic=False)

    first = await resolver.resolve(7, file, "ours", "v1")
    second = await resolver.resolve(7, file, "theirs", "v2")
    failed = await resolver.record_failure(7, file, "theirs", "tool crashed")

    assert first.ok and second.ok
    assert second.value == first.value
    assert failed.status == "resolved"
    assert (await resolutions.get(7, "README.md")).resolved_content == "v1"


@pytest.mark.asyncio
async def test_failed_file_can_still_be_resolved(resolver):
    file = ConflictFile("README.md", has_business_logic=False)

    failed = await resolver.record_failure(7, file, "ai_assisted", "provider unavailable")
    resolved = await resolver.resolve(7, file, "theirs", "v2")

    assert failed.status == "failed"
    assert resolved.value.status == "resolved"


@pytest.mark.asyncio
async def test_pending_files_excludes_resolved(resolver):
    files = [ConflictFile("a.py", True), ConflictFile("b.md", False)]
    await resolver.resolve(7, files[1], "ours", "")

    assert [file.filename for file in await resolver.pending_files(7, files)] == ["a.py"]


@pytest.mark.asyncio
async def test_unknown_strategy_is_rejected(resolver):
    with pytest.raises(ValueError):
        await resolver.resolve(7, ConflictFile("a.md", False), "rebase", "")


@pytest.mark.asyncio
async def test_conflict_file_lookup(resolver):
    file = await resolver.conflict_file(7, "src/Calculator.java")
    assert file.has_business_logic is True

    with pytest.raises(NotFoundError):
        await resolver.conflict_file(7, "missing.txt")


@pytest.mark.asyncio
async def test_analyze_without_ai_engine(resolver):
    assert await resolver.analyze_with_ai(ConflictFile("a.py", False)) is None


@pytest.mark.asyncio
async def test_analysis_on_business_logic_file_is_downgraded_to_manual(repository, resolutions):
    engine = AIReviewEngine(AIConfig(api_key="sk-test"), client=ai_client_replying(IMPORTS_ONLY_REPLY))
    resolver = MergeConflictResolver(repository, resolutions, engine)

    plain = await resolver.analyze_with_ai(ConflictFile("a.py", False, "+import a"))
    logic = await resolver.analyze_with_ai(ConflictFile("Calc.java", True, "+class Calc {}"))

    assert plain.can_auto_resolve is True
    assert plain.resolved_content == "import a"
    assert logic.recommendation == "manual"
    assert logic.can_auto_resolve is False
    assert logic.resolved_content is None
