# tests/unit/test_pipeline.py
"""
针对 `polyglot_press.pipeline.ContentPipeline` 的单元测试。

使用内存仓储与脚本化的提供商，验证文章的净化、保存、逐语言渲染与
各种失败路径的报告。
"""

import pytest
from pytest_mock import MockerFixture

from polyglot_press.cache import TranslationCache
from polyglot_press.config import PipelineConfig, RetryPolicyConfig
from polyglot_press.core.exceptions import DatabaseError
from polyglot_press.core.types import LanguageStatus
from polyglot_press.persistence.memory import InMemoryRepository
from polyglot_press.pipeline import ContentPipeline, article_translation_key
from polyglot_press.sanitizer import sanitize
from polyglot_press.translation import TranslationClient
from tests.helpers.factories import (
    ScriptedProvider,
    create_market,
    echo_source,
    failing,
    tagged_translation,
)

ARTICLE_HTML = (
    '<article><h1>Rates hold</h1><p class="lead">The central bank kept '
    'rates <b>unchanged</b>. <a href="javascript:void(0)">Share</a></p>'
    "<pre>  rate = 4.25\n  print(rate) </pre><script>track()</script></article>"
)


class _FailingTranslationsRepository(InMemoryRepository):
    async def upsert_translation(
        self, key: str, src_lang: str, dst_lang: str, text: str
    ) -> None:
        raise DatabaseError("disk full")


def _pipeline(
    repository: InMemoryRepository,
    provider: ScriptedProvider,
    no_backoff: RetryPolicyConfig,
    **kwargs: object,
) -> ContentPipeline:
    client = TranslationClient(
        provider, TranslationCache(), store=repository, retry_policy=no_backoff
    )
    return ContentPipeline(repository, client, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_article_is_sanitized_translated_and_persisted(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试文章被净化保存，并为每个目标语言生成译文。"""
    pipeline = _pipeline(repository, ScriptedProvider(tagged_translation), no_backoff)

    report = await pipeline.process_and_persist_article(
        "a1", ARTICLE_HTML, source_lang="en-US", target_langs=["de", "zh-CN"]
    )

    cleaned = sanitize(ARTICLE_HTML)
    assert repository.articles["a1"] == cleaned.html
    assert report.cleaned_hash == cleaned.cleaned_hash
    assert report.cleaned_bytes == cleaned.cleaned_bytes
    assert report.source_lang == "en-US"
    assert report.targets == ["de", "zh-CN"]
    assert [(r.lang, r.status) for r in report.results] == [
        ("de", LanguageStatus.OK),
        ("zh-CN", LanguageStatus.OK),
    ]
    assert report.results[0].key == "article:a1:full_text:de"

    _, dst, german = repository.translations[article_translation_key("a1", "de")]
    assert dst == "de"
    assert "[de]" in german
    assert "javascript" not in german
    assert "<pre>  rate = 4.25\n  print(rate) </pre>" in german


@pytest.mark.asyncio
async def test_translated_output_preserves_verbatim_regions_exactly(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试回显翻译后的结果与净化后的源文档逐字节一致。"""
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)
    raw = "<p>Run <code>make  all</code> first.</p><pre>a\n\n  b</pre>"

    await pipeline.process_and_persist_article("a2", raw, "en", ["de"])

    stored = repository.translations[article_translation_key("a2", "de")][2]
    assert stored == sanitize(raw).html


@pytest.mark.asyncio
async def test_targets_are_normalized_and_source_language_excluded(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试目标语言被规范化去重，与源语言同根的语言被剔除。"""
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)

    report = await pipeline.process_and_persist_article(
        "a3", "<p>Hi</p>", "en-US", ["DE", "de", "en-GB", "fr_ca"]
    )

    assert report.targets == ["de", "fr-CA"]
    assert len(report.results) == 2


@pytest.mark.asyncio
async def test_rtl_output_gets_direction(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)

    await pipeline.process_and_persist_article(
        "a4", "<p>Hello</p><ul><li>x</li></ul>", "en", ["ar"]
    )

    stored = repository.translations[article_translation_key("a4", "ar")][2]
    assert stored == '<p dir="rtl">Hello</p>\n<ul dir="rtl"><li>x</li></ul>'


@pytest.mark.asyncio
async def test_provider_failure_is_reported_per_language(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试提供商失败只影响当前语言，且不会写入译文。"""
    pipeline = _pipeline(repository, ScriptedProvider(failing()), no_backoff)

    report = await pipeline.process_and_persist_article("a5", "<p>Hi</p>", "en", ["de"])

    result = report.results[0]
    assert result.status is LanguageStatus.ERROR
    assert result.reason == "provider_error"
    assert result.error
    assert repository.articles["a5"] == "<p>Hi</p>"
    assert article_translation_key("a5", "de") not in repository.translations


@pytest.mark.asyncio
async def test_one_language_failing_does_not_affect_others(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    def respond(prompt: str) -> str:
        if " to fr." in prompt:
            raise RuntimeError("fr backend down")
        return tagged_translation(prompt)

    pipeline = _pipeline(repository, ScriptedProvider(respond), no_backoff)

    report = await pipeline.process_and_persist_article(
        "a6", "<p>Hi</p>", "en", ["de", "fr"]
    )

    statuses = {r.lang: r.status for r in report.results}
    assert statuses == {"de": LanguageStatus.OK, "fr": LanguageStatus.ERROR}


@pytest.mark.asyncio
async def test_output_that_sanitizes_to_nothing_is_skipped(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试译文净化后为空时跳过该语言。"""
    provider = ScriptedProvider(lambda prompt: "<iframe src='https://x'></iframe>")
    pipeline = _pipeline(repository, provider, no_backoff)

    report = await pipeline.process_and_persist_article("a7", "<p>Hi</p>", "en", ["de"])

    assert report.results[0].status is LanguageStatus.SKIPPED
    assert report.results[0].reason == "sanitized_empty"
    assert article_translation_key("a7", "de") not in repository.translations


@pytest.mark.asyncio
async def test_empty_document_skips_every_language(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    provider = ScriptedProvider(tagged_translation)
    pipeline = _pipeline(repository, provider, no_backoff)

    report = await pipeline.process_and_persist_article(
        "a8", "<script>x()</script>", "en", ["de", "fr"]
    )

    assert report.cleaned_bytes == 0
    assert repository.articles["a8"] == ""
    assert {r.reason for r in report.results} == {"empty_output"}
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_database_failure_on_translation_write(no_backoff: RetryPolicyConfig) -> None:
    """测试译文写入失败时报告 db_upsert_error。"""
    repository = _FailingTranslationsRepository()
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)

    report = await pipeline.process_and_persist_article("a9", "<p>Hi</p>", "en", ["de"])

    assert report.results[0].status is LanguageStatus.ERROR
    assert report.results[0].reason == "db_upsert_error"
    assert "disk full" in (report.results[0].error or "")


@pytest.mark.asyncio
async def test_cleaned_article_write_failure_is_reported(
    mocker: MockerFixture, repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)
    mocker.patch.object(
        repository, "save_cleaned_article", side_effect=DatabaseError("locked")
    )

    report = await pipeline.process_and_persist_article("a10", "<p>Hi</p>", "en", ["de"])

    assert report.cleaned_error == "locked"
    assert report.results[0].status is LanguageStatus.OK


@pytest.mark.asyncio
async def test_default_targets_come_from_markets(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试未指定目标语言时使用所有启用市场的展示语言并集。"""
    await repository.add_market(create_market(code="eu", show_langs=["de", "fr"]))
    await repository.add_market(
        create_market(code="latam", pretranslate_langs=["es"], show_langs=[])
    )
    await repository.add_market(
        create_market(code="off", show_langs=["ja"], enabled=False)
    )
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)

    report = await pipeline.process_and_persist_article("a11", "<p>Hi</p>", "en")

    assert report.targets == ["de", "fr", "es"]


@pytest.mark.asyncio
async def test_configured_default_targets_take_precedence(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    await repository.add_market(create_market(show_langs=["de"]))
    pipeline = _pipeline(
        repository,
        ScriptedProvider(echo_source),
        no_backoff,
        default_target_langs=["it"],
    )
    assert await pipeline.default_target_langs() == ["it"]


@pytest.mark.asyncio
async def test_default_targets_are_cached(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    await repository.add_market(create_market(show_langs=["de"]))
    pipeline = _pipeline(
        repository,
        ScriptedProvider(echo_source),
        no_backoff,
        config=PipelineConfig(default_langs_ttl=60),
    )
    assert await pipeline.default_target_langs() == ["de"]

    await repository.add_market(create_market(code="eu", show_langs=["fr"]))
    assert await pipeline.default_target_langs() == ["de"]


@pytest.mark.asyncio
async def test_empty_article_id_is_rejected(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    pipeline = _pipeline(repository, ScriptedProvider(echo_source), no_backoff)
    with pytest.raises(ValueError):
        await pipeline.process_and_persist_article("", "<p>Hi</p>")


@pytest.mark.asyncio
async def test_large_article_keeps_boundaries_and_verbatim_blocks(
    repository: InMemoryRepository, no_backoff: RetryPolicyConfig
) -> None:
    """测试超过硬上限的文章在回显翻译后首尾内容与 pre 区域完整保留。"""
    body = "Alpha starts here. " + "Markets moved sharply today. " * 1400
    raw = f"<p>{body}Omega ends here.</p>\n<pre>x  y\n  z</pre>\n<ul><li>item</li></ul>"
    assert len(raw) > 8000
    provider = ScriptedProvider(echo_source)
    pipeline = _pipeline(repository, provider, no_backoff)

    report = await pipeline.process_and_persist_article("a12", raw, "en", ["de"])

    assert report.results[0].status is LanguageStatus.OK
    cleaned = sanitize(raw).html
    stored = repository.translations[article_translation_key("a12", "de")][2]
    assert len(provider.prompts) >= 2
    assert stored[:50] == cleaned[:50]
    assert "Omega ends here.</p>" in stored
    paragraph_end = stored.index("</p>")
    assert stored[paragraph_end - 50 : paragraph_end] == cleaned[
        paragraph_end - 50 : paragraph_end
    ]
    assert "\n<pre>x  y\n  z</pre>\n" in stored
    assert stored.endswith("<ul><li>item</li></ul>")
    assert stored == cleaned
