"""
Vault Document Operations: Pure updaters for ``VaultSession.mutate``.

Each factory returns a function ``VaultDocument -> VaultDocument`` that
builds a new document instead of modifying its argument, e.g.::

    await session.mutate(add_category("accounts", "Work"))
"""
import uuid
from typing import Callable, Literal

from .models import (
    AccountItem,
    Category,
    LinkItem,
    VaultDocument,
)

Section = Literal["accounts", "links"]
Updater = Callable[[VaultDocument], VaultDocument]

_SECTIONS = ("accounts", "links")


def new_id() -> str:
    """Return a random UUID4 identifier."""
    return str(uuid.uuid4())


def _check_section(section: str) -> None:
    if section not in _SECTIONS:
        raise ValueError(f"Unknown section: {section!r}")


def _categories(doc: VaultDocument, section: str) -> list:
    return getattr(doc, section).categories


def _find(categories: list, category_id: str) -> int:
    for idx, cat in enumerate(categories):
        if cat.id == category_id:
            return idx
    raise KeyError(f"Category not found: {category_id}")


def _replace_categories(doc: VaultDocument, section: str, categories: list) -> VaultDocument:
    new_section = getattr(doc, section).model_copy(update={"categories": categories})
    return doc.model_copy(update={section: new_section})


def add_category(section: Section, name: str) -> Updater:
    """Append an empty category named ``name`` to ``section``."""
    _check_section(section)
    item_type = AccountItem if section == "accounts" else LinkItem
    category = Category[item_type](id=new_id(), name=name, items=[])

    def updater(doc: VaultDocument) -> VaultDocument:
        return _replace_categories(
            doc, section, [*_categories(doc, section), category],
        )
    return updater


def rename_category(section: Section, category_id: str, name: str) -> Updater:
    _check_section(section)

    def updater(doc: VaultDocument) -> VaultDocument:
        categories = list(_categories(doc, section))
        idx = _find(categories, category_id)
        categories[idx] = categories[idx].model_copy(update={"name": name})
        return _replace_categories(doc, section, categories)
    return updater


def remove_category(section: Section, category_id: str) -> Updater:
    """Drop a category and every item in it."""
    _check_section(section)

    def updater(doc: VaultDocument) -> VaultDocument:
        categories = list(_categories(doc, section))
        del categories[_find(categories, category_id)]
        return _replace_categories(doc, section, categories)
    return updater


def _add_item(section: str, category_id: str, item) -> Updater:
    def updater(doc: VaultDocument) -> VaultDocument:
        categories = list(_categories(doc, section))
        idx = _find(categories, category_id)
        cat = categories[idx]
        categories[idx] = cat.model_copy(update={"items": [*cat.items, item]})
        return _replace_categories(doc, section, categories)
    return updater


def add_account(category_id: str, title: str, username: str, password: str) -> Updater:
    """Append a credential to an account category."""
    item = AccountItem(id=new_id(), title=title, username=username, password=password)
    return _add_item("accounts", category_id, item)


def add_link(category_id: str, title: str, url: str) -> Updater:
    """Append a link to a link category."""
    item = LinkItem(id=new_id(), title=title, url=url)
    return _add_item("links", category_id, item)


def remove_item(section: Section, category_id: str, item_id: str) -> Updater:
    """Remove an item from a category; unknown item ids are ignored."""
    _check_section(section)

    def updater(doc: VaultDocument) -> VaultDocument:
        categories = list(_categories(doc, section))
        idx = _find(categories, category_id)
        cat = categories[idx]
        items = [i for i in cat.items if i.id != item_id]
        categories[idx] = cat.model_copy(update={"items": items})
        return _replace_categories(doc, section, categories)
    return updater


def search_categories(categories: list[Category], query: str) -> list[Category]:
    """Case-insensitive substring filter over category names."""
    needle = query.strip().lower()
    if not needle:
        return list(categories)
    return [c for c in categories if needle in c.name.lower()]
