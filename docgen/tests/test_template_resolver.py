"""
Tests for template resolution and the descriptor cache.
"""

import anyio
import pytest

from docgen.app.errors import TemplateNotFound
from docgen.app.registry.registry import TemplateResolver
from docgen.app.registry.store import InMemoryTemplateStore
from docgen.app.schemas.template import ContentType
from docgen.tests.fixtures.fakes import make_template

pytestmark = pytest.mark.anyio


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class SlowStore(InMemoryTemplateStore):
    async def load(self, template_id):
        await anyio.sleep(0.05)
        return await super().load(template_id)


class BrokenStore:
    async def load(self, template_id):
        raise ConnectionError("database unavailable")


def _resolver(store, tmp_path, ttl=60.0, clock=None):
    return TemplateResolver(
        store=store,
        templates_dir=tmp_path,
        ttl_seconds=ttl,
        clock=clock or FakeClock(),
    )


async def test_cache_hit_skips_the_store(tmp_path):
    store = InMemoryTemplateStore([make_template()])
    resolver = _resolver(store, tmp_path)

    first = await resolver.resolve("greeting")
    second = await resolver.resolve("greeting")

    assert first is second
    assert store.load_count == 1
    assert resolver.cached_ids() == ["greeting"]


async def test_expired_entry_is_reloaded(tmp_path):
    clock = FakeClock()
    store = InMemoryTemplateStore([make_template()])
    resolver = _resolver(store, tmp_path, ttl=10.0, clock=clock)

    await resolver.resolve("greeting")
    clock.now += 9.9
    await resolver.resolve("greeting")
    assert store.load_count == 1

    clock.now += 0.2
    await resolver.resolve("greeting")
    assert store.load_count == 2


async def test_concurrent_resolutions_share_one_load(tmp_path):
    store = SlowStore([make_template()])
    resolver = _resolver(store, tmp_path)
    results = []

    async def resolve():
        results.append(await resolver.resolve("greeting"))

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(resolve)

    assert store.load_count == 1
    assert len(results) == 5
    assert all(r is results[0] for r in results)


async def test_unknown_template_raises(tmp_path):
    resolver = _resolver(InMemoryTemplateStore(), tmp_path)

    with pytest.raises(TemplateNotFound) as excinfo:
        await resolver.resolve("nope")

    assert excinfo.value.template_id == "nope"


async def test_store_failure_is_reported_as_not_found(tmp_path):
    resolver = _resolver(BrokenStore(), tmp_path)

    with pytest.raises(TemplateNotFound) as excinfo:
        await resolver.resolve("greeting")

    assert isinstance(excinfo.value.__cause__, ConnectionError)


async def test_path_style_ids_load_from_file(tmp_path):
    (tmp_path / "offer.md").write_text("# Offer {{ documentNumber }}", encoding="utf-8")
    (tmp_path / "data.json").write_text('{"a": "${b}"}', encoding="utf-8")
    (tmp_path / "letter.html").write_text("<p>Hi</p>", encoding="utf-8")
    store = InMemoryTemplateStore()
    resolver = _resolver(store, tmp_path)

    markup = await resolver.resolve("offer.md")
    structured = await resolver.resolve("data.json")
    hypertext = await resolver.resolve("letter.html")

    assert markup.content_type is ContentType.MARKUP
    assert markup.name == "offer"
    assert structured.content_type is ContentType.STRUCTURED
    assert hypertext.content_type is ContentType.HYPERTEXT
    assert store.load_count == 0


async def test_missing_file_falls_through_to_store(tmp_path):
    store = InMemoryTemplateStore([make_template(id="v1.invoice", name="invoice")])
    resolver = _resolver(store, tmp_path)

    template = await resolver.resolve("v1.invoice")

    assert template.name == "invoice"
    assert store.load_count == 1


async def test_path_escaping_templates_dir_is_not_read(tmp_path):
    templates = tmp_path / "templates"
    templates.mkdir()
    (tmp_path / "secret.txt").write_text("secret", encoding="utf-8")
    resolver = _resolver(InMemoryTemplateStore(), templates)

    with pytest.raises(TemplateNotFound):
        await resolver.resolve("../secret.txt")


async def test_invalidate_and_dispose(tmp_path):
    store = InMemoryTemplateStore([make_template()])
    resolver = _resolver(store, tmp_path)

    await resolver.resolve("greeting")
    resolver.invalidate("greeting")
    await resolver.resolve("greeting")
    assert store.load_count == 2

    resolver.clear()
    assert resolver.cached_ids() == []

    resolver.dispose()
    assert resolver.cached_ids() == []
    with pytest.raises(RuntimeError):
        await resolver.resolve("greeting")


async def test_failed_resolutions_do_not_retain_locks(tmp_path):
    resolver = _resolver(InMemoryTemplateStore(), tmp_path)

    for index in range(50):
        with pytest.raises(TemplateNotFound):
            await resolver.resolve(f"unknown-{index}")

    assert resolver._locks == {}


async def test_absolute_ids_are_confined_to_templates_dir(tmp_path):
    templates = tmp_path / "templates"
    templates.mkdir()
    inside = templates / "letter.html"
    inside.write_text("<p>Inside</p>", encoding="utf-8")
    outside = tmp_path / "outside.html"
    outside.write_text("<p>Outside</p>", encoding="utf-8")
    resolver = _resolver(InMemoryTemplateStore(), templates)

    template = await resolver.resolve(str(inside))
    assert template.content == "<p>Inside</p>"

    with pytest.raises(TemplateNotFound):
        await resolver.resolve(str(outside))
