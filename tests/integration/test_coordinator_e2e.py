# tests/integration/test_coordinator_e2e.py
"""Polyglot-Press 两个入口的端到端测试。"""

import pytest

from polyglot_press.config import PolyglotPressConfig
from polyglot_press.coordinator import Coordinator
from polyglot_press.core.types import LanguageStatus
from polyglot_press.persistence.memory import InMemoryRepository
from polyglot_press.persistence.sql import SQLRepository
from polyglot_press.pipeline import article_translation_key
from tests.helpers.factories import (
    TEST_CLUSTER_ID,
    create_market,
    create_pivot_record,
)

ARTICLE = (
    "<h1>Budget   vote</h1><p>Parliament approved the budget.</p>"
    "<pre>total = 1_000_000</pre>"
    '<p><a href="//example.com/budget" target="_blank">Details</a></p>'
)


@pytest.mark.asyncio
async def test_article_workflow(
    coordinator: Coordinator, sql_repository: SQLRepository
) -> None:
    """测试文章从净化到多语言译文落库的完整流程。"""
    report = await coordinator.process_and_persist_article(
        "article-1", ARTICLE, source_lang="en-US", target_langs=["de", "zh-CN", "ar"]
    )

    assert [r.status for r in report.results] == [LanguageStatus.OK] * 3
    cleaned = await sql_repository.get_article_text("article-1")
    assert cleaned is not None
    assert cleaned.startswith("<h2>Budget vote</h2>")
    assert 'href="https://example.com/budget"' in cleaned

    german = await sql_repository.get_translation(article_translation_key("article-1", "de"))
    assert german is not None
    assert "[t]" in german
    assert "<pre>total = 1_000_000</pre>" in german

    arabic = await sql_repository.get_translation(article_translation_key("article-1", "ar"))
    assert arabic is not None
    assert 'dir="rtl"' in arabic
    assert '<pre dir="rtl">' not in arabic


@pytest.mark.asyncio
async def test_pretranslation_workflow(
    coordinator: Coordinator, sql_repository: SQLRepository
) -> None:
    """测试预翻译扫描：首次生成译文，再次扫描不产生新行。"""
    await sql_repository.add_market(create_market(pretranslate_langs=["de", "fr"]))
    await sql_repository.upsert_cluster(TEST_CLUSTER_ID)
    await sql_repository.supersede_cluster_ai(create_pivot_record())

    first = await coordinator.run_pretranslation_cycle()
    assert first.jobs_created == 2
    assert first.translations_inserted == 2

    current = await sql_repository.get_current_cluster_ai(TEST_CLUSTER_ID)
    assert set(current) == {"en", "de", "fr"}
    assert current["de"].model is not None
    assert current["de"].model.startswith("debug#ph=")

    second = await coordinator.run_pretranslation_cycle()
    assert second.jobs_created == 0
    assert second.skipped_fresh == 2
    assert len(await sql_repository.rows_for(TEST_CLUSTER_ID, "de")) == 1


@pytest.mark.asyncio
async def test_coordinator_requires_initialization() -> None:
    config = PolyglotPressConfig(database_url="memory://", _env_file=None)  # type: ignore[call-arg]
    coordinator = Coordinator(config, InMemoryRepository())
    with pytest.raises(RuntimeError):
        await coordinator.run_pretranslation_cycle()
