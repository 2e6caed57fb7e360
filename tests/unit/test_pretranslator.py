# tests/unit/test_pretranslator.py
"""
针对 `polyglot_press.pretranslator.PretranslationScheduler` 的单元测试。

重点验证新鲜度判断：内容未变化时重复扫描不产生任何任务或新行。
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from pytest_mock import MockerFixture

from polyglot_press.cache import TranslationCache
from polyglot_press.config import PretranslationConfig, RetryPolicyConfig
from polyglot_press.core.types import ClusterAIRecord
from polyglot_press.fields import FieldTranslator
from polyglot_press.persistence.memory import InMemoryRepository
from polyglot_press.pretranslator import (
    PretranslationScheduler,
    is_fresh,
    provenance_tag,
)
from polyglot_press.translation import TranslationClient
from tests.helpers.factories import (
    TEST_CLUSTER_ID,
    ScriptedProvider,
    create_market,
    create_pivot_record,
    failing,
    fingerprint_of,
    tagged_translation,
    utc_now,
)


def _scheduler(
    repository: InMemoryRepository,
    provider: ScriptedProvider,
    no_backoff: RetryPolicyConfig,
    **config: int,
) -> PretranslationScheduler:
    client = TranslationClient(provider, TranslationCache(), retry_policy=no_backoff)
    return PretranslationScheduler(
        repository,
        FieldTranslator(client),
        provider_name="scripted",
        config=PretranslationConfig(**config),
    )


@pytest_asyncio.fixture
async def seeded(repository: InMemoryRepository) -> InMemoryRepository:
    """一个市场（en → de, fr）与一个带枢纽记录的最近聚类。"""
    await repository.add_market(create_market(pretranslate_langs=["de", "fr"]))
    await repository.upsert_cluster(TEST_CLUSTER_ID)
    await repository.supersede_cluster_ai(create_pivot_record())
    return repository


def test_provenance_tag_and_freshness() -> None:
    """测试来源标签格式，以及按指纹或来源标签判断新鲜度。"""
    assert provenance_tag("openai", "abc123def0") == "openai#ph=abc123def0"

    by_hash = ClusterAIRecord(cluster_id="c", lang="de", pivot_hash="h1")
    by_tag = ClusterAIRecord(cluster_id="c", lang="de", model="legacy#ph=h1")
    stale = ClusterAIRecord(cluster_id="c", lang="de", pivot_hash="h0", model="x#ph=h0")

    assert is_fresh(by_hash, "h1")
    assert is_fresh(by_tag, "h1")
    assert not is_fresh(stale, "h1")
    assert not is_fresh(None, "h1")


@pytest.mark.asyncio
async def test_first_cycle_translates_and_second_cycle_is_idle(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试首次扫描生成两个任务，再次扫描时内容未变，不产生任何任务或新行。"""
    provider = ScriptedProvider(tagged_translation)
    scheduler = _scheduler(seeded, provider, no_backoff)
    pivot_hash = fingerprint_of(create_pivot_record())

    first = await scheduler.run_pretranslation_cycle()

    assert first.clusters_checked == 1
    assert first.jobs_created == 2
    assert first.translations_inserted == 2
    assert first.error is None
    german = seeded.rows_for(TEST_CLUSTER_ID, "de")
    assert len(german) == 1
    assert german[0].title == "[de] Markets rally"
    assert german[0].pivot_hash == pivot_hash
    assert german[0].model == f"scripted#ph={pivot_hash}"

    calls_after_first = len(provider.prompts)
    second = await scheduler.run_pretranslation_cycle()

    assert second.jobs_created == 0
    assert second.skipped_fresh == 2
    assert second.translations_inserted == 0
    assert len(provider.prompts) == calls_after_first
    assert len(seeded.rows_for(TEST_CLUSTER_ID, "de")) == 1


@pytest.mark.asyncio
async def test_already_fresh_language_is_skipped(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试已由当前枢纽内容生成的语言不会再次生成任务。"""
    pivot_hash = fingerprint_of(create_pivot_record())
    await seeded.supersede_cluster_ai(
        ClusterAIRecord(
            cluster_id=TEST_CLUSTER_ID,
            lang="de",
            title="Märkte steigen",
            pivot_hash=pivot_hash,
            model=provenance_tag("human", pivot_hash),
        )
    )
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.jobs_created == 1
    assert report.skipped_fresh == 1
    assert seeded.rows_for(TEST_CLUSTER_ID, "de")[0].title == "Märkte steigen"
    assert len(seeded.rows_for(TEST_CLUSTER_ID, "fr")) == 1


@pytest.mark.asyncio
async def test_changed_pivot_supersedes_previous_translation(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试枢纽内容变化后重新翻译，旧行被降级，每种语言只有一行当前记录。"""
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)
    await scheduler.run_pretranslation_cycle()

    updated = create_pivot_record(title="Markets slump")
    await seeded.supersede_cluster_ai(updated)
    report = await scheduler.run_pretranslation_cycle()

    assert report.jobs_created == 2
    assert report.translations_inserted == 2
    rows = seeded.rows_for(TEST_CLUSTER_ID, "de")
    assert len(rows) == 2
    assert [row.is_current for row in rows] == [False, True]
    assert rows[1].title == "[de] Markets slump"
    assert rows[1].pivot_hash == fingerprint_of(updated)


@pytest.mark.asyncio
async def test_cluster_without_pivot_is_skipped(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    await repository.add_market(create_market())
    await repository.upsert_cluster("no-pivot")
    scheduler = _scheduler(repository, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.clusters_checked == 1
    assert report.jobs_created == 0


@pytest.mark.asyncio
async def test_old_clusters_are_not_scanned(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试超出时间窗口的聚类不会被检查。"""
    await repository.add_market(create_market())
    await repository.upsert_cluster(TEST_CLUSTER_ID, utc_now() - timedelta(hours=48))
    await repository.supersede_cluster_ai(create_pivot_record())
    scheduler = _scheduler(repository, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle(recent_hours=24)

    assert report.clusters_checked == 0
    assert report.jobs_created == 0


@pytest.mark.asyncio
async def test_duplicate_targets_across_markets_create_one_job(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试多个市场请求同一语言时，同一 (聚类, 语言, 指纹) 只生成一个任务。"""
    await seeded.add_market(create_market(code="eu", pretranslate_langs=["DE", "en-GB"]))
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.jobs_created == 2
    assert len(seeded.rows_for(TEST_CLUSTER_ID, "de")) == 1


@pytest.mark.asyncio
async def test_market_filter(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    await seeded.add_market(create_market(code="jp", pretranslate_langs=["ja"]))
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle(market="jp")

    assert report.jobs_created == 1
    assert seeded.rows_for(TEST_CLUSTER_ID, "de") == []


@pytest.mark.asyncio
async def test_timed_out_jobs_write_nothing(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试超时的任务被放弃，不会写入任何行。"""
    provider = ScriptedProvider(tagged_translation, delay=1.0)
    scheduler = _scheduler(seeded, provider, no_backoff)

    report = await scheduler.run_pretranslation_cycle(per_item_timeout_ms=20)

    assert report.jobs_created == 2
    assert report.jobs_failed == 2
    assert report.translations_inserted == 0
    assert seeded.rows_for(TEST_CLUSTER_ID, "de") == []
    assert seeded.rows_for(TEST_CLUSTER_ID, "fr") == []


@pytest.mark.asyncio
async def test_provider_failures_are_counted(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试提供商失败时任务计为失败，扫描本身仍然成功。"""
    scheduler = _scheduler(seeded, ScriptedProvider(failing()), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.jobs_failed == 2
    assert report.error is None
    assert seeded.rows_for(TEST_CLUSTER_ID, "fr") == []


@pytest.mark.asyncio
async def test_pivot_change_between_plan_and_run_skips_job(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig, mocker: MockerFixture
) -> None:
    """测试计划之后枢纽内容发生变化时，任务被跳过而不是写入过期译文。"""
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)
    original_plan = scheduler._plan

    async def plan_then_edit(*args: object, **kwargs: object) -> object:
        jobs = await original_plan(*args, **kwargs)  # type: ignore[arg-type]
        await seeded.supersede_cluster_ai(create_pivot_record(title="Edited"))
        return jobs

    mocker.patch.object(scheduler, "_plan", side_effect=plan_then_edit)

    report = await scheduler.run_pretranslation_cycle()

    assert report.jobs_created == 2
    assert report.jobs_skipped == 2
    assert report.translations_inserted == 0


@pytest.mark.asyncio
async def test_repository_failure_is_reported_not_raised(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig, mocker: MockerFixture
) -> None:
    mocker.patch.object(
        seeded, "list_recent_clusters", side_effect=RuntimeError("connection lost")
    )
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.error == "connection lost"
    assert report.jobs_created == 0


@pytest.mark.asyncio
async def test_no_enabled_markets(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    await repository.add_market(create_market(enabled=False))
    await repository.upsert_cluster(TEST_CLUSTER_ID)
    scheduler = _scheduler(repository, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle()

    assert report.clusters_checked == 0
    assert report.jobs_created == 0


@pytest.mark.asyncio
async def test_explicit_zero_cluster_limit_is_respected(
    seeded: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试显式传入 0 不会被替换为配置中的默认值。"""
    scheduler = _scheduler(seeded, ScriptedProvider(tagged_translation), no_backoff)

    report = await scheduler.run_pretranslation_cycle(max_clusters=0)

    assert report.clusters_checked == 0
    assert report.jobs_created == 0
    assert seeded.rows_for(TEST_CLUSTER_ID, "de") == []
