"""
Tests for YAML-backed copy (message composer) and the listing catalog.
"""

import pytest
from pydantic import ValidationError

from luxepass.services.catalog import get_catalog, load_catalog
from luxepass.services.messaging.message_composer import MessageComposer


@pytest.fixture
def copy_dir(tmp_path):
    (tmp_path / "en_NG.yml").write_text(
        'greeting:\n  - "Hello {name}"\n  - "Hi {name}"\n  - "Hey {name}"\n'
        'single: "Just one"\nempty: []\n',
        encoding="utf-8",
    )
    return tmp_path


def test_same_identifier_always_gets_same_variant(copy_dir):
    composer = MessageComposer(copy_dir=copy_dir)

    first = composer.render("greeting", identifier="2348012345678", name="Ada")

    assert first in {"Hello Ada", "Hi Ada", "Hey Ada"}
    for _ in range(5):
        assert composer.render("greeting", identifier="2348012345678", name="Ada") == first


def test_without_identifier_uses_first_variant(copy_dir):
    assert MessageComposer(copy_dir=copy_dir).render("greeting", name="Ada") == "Hello Ada"


def test_plain_string_and_empty_variants(copy_dir):
    composer = MessageComposer(copy_dir=copy_dir)
    assert composer.render("single") == "Just one"
    assert composer.render("empty") == ""


def test_missing_key_and_missing_variable(copy_dir):
    composer = MessageComposer(copy_dir=copy_dir)
    assert composer.render("nope") == "[MISSING: nope]"
    assert composer.has("greeting")
    assert not composer.has("nope")
    # Unfilled placeholders are left as-is rather than raising
    assert composer.render("greeting") == "Hello {name}"


def test_missing_copy_file_gives_empty_copy(tmp_path):
    composer = MessageComposer(locale="fr_FR", copy_dir=tmp_path)
    assert composer.render("welcome") == "[MISSING: welcome]"


def test_shipped_copy_has_welcome():
    assert MessageComposer().render("welcome").startswith("Welcome to LuxePass!")


def test_shipped_catalog():
    catalog = get_catalog()

    assert [c.id for c in catalog.categories] == ["apartment", "hotel", "villa"]
    studio = catalog.get_listing("apartment", "apt_vi_studio")
    assert studio.nightly_rate == 55000
    assert studio.max_guests == 2
    assert catalog.get_listing("hotel", "apt_vi_studio") is None
    assert catalog.get_category("castle") is None
    assert catalog.get_security_question("sq_city") is not None


def test_catalog_rejects_too_many_listings(tmp_path):
    listings = "".join(
        f"      - {{id: l{i}, title: Listing {i}, nightly_rate: 1000, max_guests: 2}}\n" for i in range(4)
    )
    path = tmp_path / "catalog.yml"
    path.write_text(
        "categories:\n  - id: apartment\n    title: Apartments\n    listings:\n"
        + listings
        + "security_questions:\n  - {id: sq_city, title: Birth city, text: \"Where were you born?\"}\n",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError):
        load_catalog(path)
