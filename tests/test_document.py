"""
Tests for the pure document updaters.
"""
import pytest

from pinvault.vault.document import (
    add_account,
    add_category,
    add_link,
    remove_category,
    remove_item,
    rename_category,
    search_categories,
)
from pinvault.vault.models import AccountItem, LinkItem, VaultDocument


@pytest.fixture
def doc():
    return VaultDocument.empty()


@pytest.fixture
def work_doc(doc):
    return add_category("accounts", "Work")(doc)


class TestCategories:

    def test_add_category(self, doc):
        updated = add_category("accounts", "Work")(doc)
        assert [c.name for c in updated.accounts.categories] == ["Work"]
        assert updated.links.categories == []

    def test_updater_is_pure(self, doc):
        """The input document is never modified."""
        add_category("links", "News")(doc)
        assert doc.links.categories == []

    def test_category_ids_are_unique(self, doc):
        doc = add_category("links", "A")(doc)
        doc = add_category("links", "B")(doc)
        ids = [c.id for c in doc.links.categories]
        assert len(set(ids)) == 2

    def test_rename_category(self, work_doc):
        cat_id = work_doc.accounts.categories[0].id
        updated = rename_category("accounts", cat_id, "Office")(work_doc)
        assert updated.accounts.categories[0].name == "Office"
        assert updated.accounts.categories[0].id == cat_id
        assert work_doc.accounts.categories[0].name == "Work"

    def test_remove_category(self, work_doc):
        cat_id = work_doc.accounts.categories[0].id
        updated = remove_category("accounts", cat_id)(work_doc)
        assert updated.accounts.categories == []

    def test_unknown_category(self, work_doc):
        with pytest.raises(KeyError):
            remove_category("accounts", "missing")(work_doc)

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            add_category("notes", "X")


class TestItems:

    def test_add_account(self, work_doc):
        cat_id = work_doc.accounts.categories[0].id
        updated = add_account(cat_id, "Mail", "me@example.com", "hunter2")(work_doc)
        item = updated.accounts.categories[0].items[0]
        assert isinstance(item, AccountItem)
        assert (item.title, item.username, item.password) == (
            "Mail", "me@example.com", "hunter2"
        )
        assert work_doc.accounts.categories[0].items == []

    def test_add_link(self, doc):
        doc = add_category("links", "News")(doc)
        cat_id = doc.links.categories[0].id
        updated = add_link(cat_id, "Example", "https://example.com")(doc)
        item = updated.links.categories[0].items[0]
        assert isinstance(item, LinkItem)
        assert item.url == "https://example.com"

    def test_add_item_to_unknown_category(self, doc):
        with pytest.raises(KeyError):
            add_link("missing", "x", "y")(doc)

    def test_remove_item(self, work_doc):
        cat_id = work_doc.accounts.categories[0].id
        doc = add_account(cat_id, "A", "u", "p")(work_doc)
        doc = add_account(cat_id, "B", "u", "p")(doc)
        first = doc.accounts.categories[0].items[0].id
        updated = remove_item("accounts", cat_id, first)(doc)
        assert [i.title for i in updated.accounts.categories[0].items] == ["B"]

    def test_result_is_valid_document(self, work_doc):
        cat_id = work_doc.accounts.categories[0].id
        doc = add_account(cat_id, "A", "u", "p")(work_doc)
        assert VaultDocument.model_validate(doc.model_dump()) == doc


class TestSearch:

    def test_case_insensitive(self, doc):
        doc = add_category("links", "Work Tools")(doc)
        doc = add_category("links", "Personal")(doc)
        found = search_categories(doc.links.categories, "work")
        assert [c.name for c in found] == ["Work Tools"]

    def test_empty_query_returns_all(self, doc):
        doc = add_category("links", "A")(doc)
        assert len(search_categories(doc.links.categories, "  ")) == 1
