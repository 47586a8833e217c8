import logging

import pytest

from shopcatalog.exceptions import (
    CategoryInUseError, CategoryIntegrityError, CategoryNotFoundError,
    CategoryValidationError, CyclicParentError, DuplicateNameError,
    DuplicateSlugError, HasSubcategoriesError, SelfParentError
)
from shopcatalog.models.category import ROOT_PARENT, CategoryQuery, CategoryUpdate
from shopcatalog.services.category_service import CategoryService


class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults_applied(self, service):
        category = await service.create_category({"name": "Spices"})

        assert category.category_id
        assert category.parent_id is None
        assert category.is_active is True
        assert category.subcategory_ids == []
        assert category.seo.slug == "spices"
        assert category.seo.meta_title == "Spices"
        assert category.seo.meta_description == "Shop Spices products"
        assert category.seo.keywords == ["spices"]
        assert category.created_at is not None

    @pytest.mark.asyncio
    async def test_description_and_seo_overrides(self, service):
        category = await service.create_category({
            "name": "Green Tea",
            "description": "Loose leaf green teas",
            "is_active": False,
            "seo": {"slug": "tea-green", "keywords": ["matcha", "sencha"]}
        })

        assert category.is_active is False
        assert category.seo.slug == "tea-green"
        assert category.seo.meta_title == "Green Tea"
        assert category.seo.meta_description == "Loose leaf green teas"
        assert category.seo.keywords == ["matcha", "sencha"]

    @pytest.mark.asyncio
    async def test_child_registered_in_parent(self, service, store, spices_chain):
        spices, peppers, chili = spices_chain

        assert (await store.find_by_id(spices.category_id)).subcategory_ids == [peppers.category_id]
        assert (await store.find_by_id(peppers.category_id)).subcategory_ids == [chili.category_id]
        assert peppers.seo.slug == "peppers"

    @pytest.mark.asyncio
    async def test_duplicate_name_at_root_is_case_insensitive(self, service, spices_chain):
        with pytest.raises(DuplicateNameError):
            await service.create_category({"name": "sPICES"})

    @pytest.mark.asyncio
    async def test_same_name_allowed_under_different_parent(self, service, spices_chain):
        spices, peppers, _ = spices_chain

        category = await service.create_category({
            "name": "Spices",
            "parent_id": peppers.category_id,
            "seo": {"slug": "pepper-spices"}
        })
        assert category.parent_id == peppers.category_id

    @pytest.mark.asyncio
    async def test_duplicate_explicit_slug(self, service, spices_chain):
        with pytest.raises(DuplicateSlugError):
            await service.create_category({"name": "Hot Stuff", "seo": {"slug": "peppers"}})

    @pytest.mark.asyncio
    async def test_duplicate_derived_slug(self, service, spices_chain):
        _, peppers, _ = spices_chain

        # Different sibling group, same derived slug
        with pytest.raises(DuplicateSlugError):
            await service.create_category({"name": "Spices", "parent_id": peppers.category_id})

    @pytest.mark.asyncio
    async def test_unknown_parent(self, service):
        with pytest.raises(CategoryNotFoundError):
            await service.create_category({"name": "Orphan", "parent_id": 42})

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, service, store):
        with pytest.raises(CategoryValidationError):
            await service.create_category({"name": "   "})
        assert await store.count(CategoryQuery()) == 0

    @pytest.mark.asyncio
    async def test_name_without_slug_characters_needs_explicit_slug(self, service):
        with pytest.raises(CategoryValidationError):
            await service.create_category({"name": "ادویه"})

        category = await service.create_category({"name": "ادویه", "seo": {"slug": "adviye"}})
        assert category.seo.slug == "adviye"

    @pytest.mark.asyncio
    async def test_missing_parent_link_is_logged_not_raised(self, service, store, caplog):
        spices = await service.create_category({"name": "Spices"})

        async def parent_gone(parent_id, child_id):
            return False

        store.add_subcategory = parent_gone
        with caplog.at_level(logging.WARNING):
            peppers = await service.create_category({"name": "Peppers", "parent_id": spices.category_id})

        assert peppers.parent_id == spices.category_id
        assert "Partial consistency" in caplog.text

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back_insert(self, service, store):
        spices = await service.create_category({"name": "Spices"})

        async def broken(parent_id, child_id):
            raise RuntimeError("connection lost")

        store.add_subcategory = broken
        with pytest.raises(RuntimeError):
            await service.create_category({"name": "Peppers", "parent_id": spices.category_id})

        assert await store.find_one(CategoryQuery(slug="peppers")) is None


class TestReads:
    @pytest.mark.asyncio
    async def test_get_category_resolves_parent_and_children(self, service, spices_chain):
        spices, peppers, chili = spices_chain

        detail = await service.get_category(peppers.category_id)

        assert detail.parent.name == "Spices"
        assert detail.parent.slug == "spices"
        assert [sub.name for sub in detail.subcategories] == ["Chili Peppers"]
        assert detail.subcategories[0].is_active is True

    @pytest.mark.asyncio
    async def test_get_category_by_slug(self, service, spices_chain):
        detail = await service.get_category_by_slug("chili-peppers")
        assert detail.name == "Chili Peppers"
        assert detail.parent.name == "Peppers"

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        with pytest.raises(CategoryNotFoundError) as exc_info:
            await service.get_category(404)
        assert exc_info.value.status_code == 404

        with pytest.raises(CategoryNotFoundError):
            await service.get_category_by_slug("missing")

    @pytest.mark.asyncio
    async def test_breadcrumb_is_root_first(self, service, spices_chain):
        spices, peppers, chili = spices_chain
        habanero = await service.create_category({"name": "Habanero", "parent_id": chili.category_id})

        breadcrumb = await service.get_breadcrumb(habanero.category_id)

        assert [item.name for item in breadcrumb] == ["Spices", "Peppers", "Chili Peppers", "Habanero"]
        assert breadcrumb[0].slug == "spices"

    @pytest.mark.asyncio
    async def test_breadcrumb_unknown_id_is_empty(self, service):
        assert await service.get_breadcrumb(999) == []

    @pytest.mark.asyncio
    async def test_is_descendant(self, service, spices_chain):
        spices, peppers, chili = spices_chain

        assert await service.is_descendant(chili.category_id, spices.category_id) is True
        assert await service.is_descendant(chili.category_id, peppers.category_id) is True
        assert await service.is_descendant(spices.category_id, chili.category_id) is False
        assert await service.is_descendant(spices.category_id, spices.category_id) is False
        assert await service.is_descendant(999, spices.category_id) is False

    @pytest.mark.asyncio
    async def test_is_descendant_detects_stored_cycle(self, service, store, spices_chain):
        spices, _, chili = spices_chain
        await store.update_by_id(spices.category_id, {"parent_id": chili.category_id})

        with pytest.raises(CategoryIntegrityError):
            await service.is_descendant(spices.category_id, 999)

        with pytest.raises(CategoryIntegrityError):
            await service.get_breadcrumb(chili.category_id)


class TestList:
    @pytest.mark.asyncio
    async def test_root_filter(self, service, spices_chain):
        await service.create_category({"name": "Herbs", "is_active": False})

        page = await service.list_categories({"parent_id": ROOT_PARENT})

        assert [c.name for c in page.items] == ["Herbs", "Spices"]
        assert page.total == 2
        assert page.page == 1
        assert page.total_pages == 1

    @pytest.mark.asyncio
    async def test_parent_and_active_filters(self, service, spices_chain):
        spices, peppers, _ = spices_chain
        await service.create_category({"name": "Salts", "parent_id": spices.category_id, "is_active": False})

        children = await service.list_categories({"parent_id": spices.category_id})
        active_children = await service.list_categories({"parent_id": str(spices.category_id), "is_active": True})

        assert [c.name for c in children.items] == ["Peppers", "Salts"]
        assert [c.name for c in active_children.items] == ["Peppers"]

    @pytest.mark.asyncio
    async def test_search_matches_keywords_and_description(self, service, spices_chain):
        await service.create_category({
            "name": "Herbs",
            "description": "Dried leaves",
            "seo": {"keywords": ["basil", "oregano"]}
        })

        assert [c.name for c in (await service.list_categories({"search": "BASIL"})).items] == ["Herbs"]
        assert [c.name for c in (await service.list_categories({"search": "leaves"})).items] == ["Herbs"]
        assert [c.name for c in (await service.list_categories({"search": "pepper"})).items] == [
            "Chili Peppers", "Peppers"
        ]

    @pytest.mark.asyncio
    async def test_sorting_and_pagination(self, service, spices_chain):
        first = await service.list_categories({"sort_by": "name_desc"}, page=1, page_size=2)
        second = await service.list_categories({"sort_by": "name_desc"}, page=2, page_size=2)

        assert [c.name for c in first.items] == ["Spices", "Peppers"]
        assert [c.name for c in second.items] == ["Chili Peppers"]
        assert first.total == 3
        assert first.total_pages == 2

        newest = await service.list_categories({"sort_by": "created_desc"})
        assert newest.items[0].name == "Chili Peppers"

        fallback = await service.list_categories({"sort_by": "bogus"})
        assert [c.name for c in fallback.items] == ["Chili Peppers", "Peppers", "Spices"]

    @pytest.mark.asyncio
    async def test_invalid_parent_filter(self, service):
        with pytest.raises(CategoryValidationError):
            await service.list_categories({"parent_id": "abc"})


class TestActiveTree:
    @pytest.mark.asyncio
    async def test_tree_nested_and_sorted(self, service, spices_chain):
        spices, _, _ = spices_chain
        await service.create_category({"name": "Anise", "parent_id": spices.category_id})
        await service.create_category({"name": "Herbs"})

        tree = await service.get_active_tree()

        assert [node.name for node in tree] == ["Herbs", "Spices"]
        spices_node = tree[1]
        assert [child.name for child in spices_node.children] == ["Anise", "Peppers"]
        assert [child.name for child in spices_node.children[1].children] == ["Chili Peppers"]

    @pytest.mark.asyncio
    async def test_inactive_branch_pruned(self, service, spices_chain):
        spices, peppers, _ = spices_chain
        await service.create_category({"name": "Salts", "parent_id": spices.category_id})
        await service.update_category(peppers.category_id, {"is_active": False})

        tree = await service.get_active_tree()

        assert [node.name for node in tree] == ["Spices"]
        # Chili Peppers is active but hidden with its inactive parent
        assert [child.name for child in tree[0].children] == ["Salts"]

    @pytest.mark.asyncio
    async def test_depth_limit(self, service, spices_chain):
        _, _, chili = spices_chain
        await service.create_category({"name": "Habanero", "parent_id": chili.category_id})

        default = await service.get_active_tree()
        chili_node = default[0].children[0].children[0]
        assert chili_node.name == "Chili Peppers"
        assert chili_node.children == []

        shallow = await service.get_active_tree(max_depth=1)
        assert shallow[0].children[0].children == []

        full = await service.get_active_tree(max_depth=None)
        assert [n.name for n in full[0].children[0].children[0].children] == ["Habanero"]


class TestUpdate:
    @pytest.mark.asyncio
    async def test_rename_regenerates_slug(self, service, spices_chain, assert_invariants):
        _, peppers, _ = spices_chain

        updated = await service.update_category(peppers.category_id, {"name": "Hot Peppers"})

        assert updated.name == "Hot Peppers"
        assert updated.seo.slug == "hot-peppers"
        assert updated.parent.name == "Spices"
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_rename_with_explicit_slug(self, service, spices_chain):
        _, peppers, _ = spices_chain

        updated = await service.update_category(
            peppers.category_id, CategoryUpdate(name="Capsicum", seo={"slug": "capsicum-all"})
        )
        assert updated.seo.slug == "capsicum-all"

    @pytest.mark.asyncio
    async def test_blank_slug_keeps_current_slug(self, service):
        tea = await service.create_category({"name": "Tea"})

        updated = await service.update_category(tea.category_id, {"seo": {"slug": ""}})
        assert updated.seo.slug == "tea"

        updated = await service.update_category(tea.category_id, {"seo": {"slug": "   "}})
        assert updated.seo.slug == "tea"

    @pytest.mark.asyncio
    async def test_blank_slug_with_rename_derives_slug(self, service):
        tea = await service.create_category({"name": "Tea"})

        updated = await service.update_category(
            tea.category_id, {"name": "Green Tea", "seo": {"slug": " "}}
        )
        assert updated.seo.slug == "green-tea"

    @pytest.mark.asyncio
    async def test_self_parent_with_same_named_child(self, service, assert_invariants):
        tea = await service.create_category({"name": "Tea"})
        await service.create_category({
            "name": "Tea", "parent_id": tea.category_id, "seo": {"slug": "tea-2"}
        })

        with pytest.raises(SelfParentError):
            await service.update_category(tea.category_id, {"parent_id": tea.category_id})
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_rename_to_sibling_name(self, service, spices_chain):
        spices, _, _ = spices_chain
        salts = await service.create_category({"name": "Salts", "parent_id": spices.category_id})

        with pytest.raises(DuplicateNameError):
            await service.update_category(salts.category_id, {"name": "PEPPERS"})

    @pytest.mark.asyncio
    async def test_rename_to_existing_slug(self, service, spices_chain):
        spices, _, _ = spices_chain
        await service.create_category({"name": "Hot Peppers", "parent_id": spices.category_id})
        salts = await service.create_category({"name": "Salts"})

        with pytest.raises(DuplicateSlugError):
            await service.update_category(salts.category_id, {"name": "Hot-Peppers"})

    @pytest.mark.asyncio
    async def test_explicit_slug_conflict(self, service, spices_chain):
        _, peppers, _ = spices_chain

        with pytest.raises(DuplicateSlugError):
            await service.update_category(peppers.category_id, {"seo": {"slug": "spices"}})

    @pytest.mark.asyncio
    async def test_seo_patch_merges(self, service, spices_chain):
        _, peppers, _ = spices_chain

        updated = await service.update_category(peppers.category_id, {"seo": {"meta_title": "Hot!"}})

        assert updated.seo.meta_title == "Hot!"
        assert updated.seo.slug == "peppers"
        assert updated.seo.keywords == ["peppers"]

    @pytest.mark.asyncio
    async def test_description_can_be_cleared(self, service):
        category = await service.create_category({"name": "Tea", "description": "Leaves"})

        updated = await service.update_category(category.category_id, {"description": None})
        assert updated.description is None

    @pytest.mark.asyncio
    async def test_move_updates_both_parents(self, service, store, spices_chain, assert_invariants):
        spices, peppers, chili = spices_chain

        updated = await service.update_category(chili.category_id, {"parent_id": spices.category_id})

        assert updated.parent_id == spices.category_id
        assert updated.parent.name == "Spices"
        assert (await store.find_by_id(peppers.category_id)).subcategory_ids == []
        assert set((await store.find_by_id(spices.category_id)).subcategory_ids) == {
            peppers.category_id, chili.category_id
        }
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_move_to_root(self, service, store, spices_chain, assert_invariants):
        _, peppers, chili = spices_chain

        updated = await service.update_category(chili.category_id, {"parent_id": None})

        assert updated.parent_id is None
        assert updated.parent is None
        assert (await store.find_by_id(peppers.category_id)).subcategory_ids == []
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_move_into_group_with_same_name(self, service, spices_chain):
        _, peppers, _ = spices_chain
        await service.create_category({"name": "Peppers", "seo": {"slug": "peppers-root"}})

        with pytest.raises(DuplicateNameError):
            await service.update_category(peppers.category_id, {"parent_id": None})

    @pytest.mark.asyncio
    async def test_self_parent(self, service, spices_chain):
        _, peppers, _ = spices_chain

        with pytest.raises(SelfParentError):
            await service.update_category(peppers.category_id, {"parent_id": peppers.category_id})

    @pytest.mark.asyncio
    async def test_cycle_rejected_without_mutation(self, service, store, spices_chain, assert_invariants):
        spices, peppers, chili = spices_chain

        with pytest.raises(CyclicParentError):
            await service.update_category(spices.category_id, {"parent_id": chili.category_id})

        assert (await store.find_by_id(spices.category_id)).parent_id is None
        assert (await store.find_by_id(chili.category_id)).subcategory_ids == []
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_unknown_category_or_parent(self, service, spices_chain):
        _, peppers, _ = spices_chain

        with pytest.raises(CategoryNotFoundError):
            await service.update_category(999, {"name": "Nope"})
        with pytest.raises(CategoryNotFoundError):
            await service.update_category(peppers.category_id, {"parent_id": 999})


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_guard(self, service, store, spices_chain):
        spices, peppers, _ = spices_chain

        with pytest.raises(HasSubcategoriesError):
            await service.delete_category(spices.category_id)

        assert await store.find_by_id(spices.category_id) is not None
        assert (await store.find_by_id(spices.category_id)).subcategory_ids == [peppers.category_id]

    @pytest.mark.asyncio
    async def test_delete_unlinks_from_parent(self, service, store, spices_chain, assert_invariants):
        _, peppers, chili = spices_chain

        deleted = await service.delete_category(chili.category_id)

        assert deleted.name == "Chili Peppers"
        assert await store.find_by_id(chili.category_id) is None
        assert (await store.find_by_id(peppers.category_id)).subcategory_ids == []
        await assert_invariants()

    @pytest.mark.asyncio
    async def test_delete_unknown(self, service):
        with pytest.raises(CategoryNotFoundError):
            await service.delete_category(999)

    @pytest.mark.asyncio
    async def test_reference_counter_blocks_delete(self, store):
        async def products_in(category_id):
            return 3

        service = CategoryService(store, reference_counter=products_in)
        tea = await service.create_category({"name": "Tea"})

        with pytest.raises(CategoryInUseError) as exc_info:
            await service.delete_category(tea.category_id)
        assert exc_info.value.count == 3
        assert await store.find_by_id(tea.category_id) is not None


class TestStatsAndSearch:
    @pytest.mark.asyncio
    async def test_stats(self, service, spices_chain):
        await service.create_category({"name": "Herbs", "is_active": False})

        stats = await service.get_stats()

        assert stats.overview.total_categories == 4
        assert stats.overview.active_categories == 3
        assert stats.overview.inactive_categories == 1
        assert stats.overview.root_categories == 2
        assert stats.overview.subcategories == 2
        assert [(d.depth, d.count) for d in stats.depth_breakdown] == [(0, 2), (1, 2)]

    @pytest.mark.asyncio
    async def test_exact_depth_stats(self, service, spices_chain):
        await service.create_category({"name": "Herbs"})

        stats = await service.get_stats(exact_depth=True)

        assert [(d.depth, d.count) for d in stats.depth_breakdown] == [(0, 2), (1, 1), (2, 1)]

    @pytest.mark.asyncio
    async def test_empty_stats(self, service):
        stats = await service.get_stats()
        assert stats.overview.total_categories == 0
        assert stats.depth_breakdown == []

    @pytest.mark.asyncio
    async def test_search_projection(self, service, spices_chain):
        _, peppers, _ = spices_chain
        await service.create_category({"name": "Pepper Mills", "is_active": False})

        results = await service.search_categories("pepper")

        assert [r.name for r in results] == ["Chili Peppers", "Peppers"]
        assert results[0].parent.name == "Peppers"
        assert results[0].parent_id == peppers.category_id
        assert results[0].slug == "chili-peppers"
        assert results[1].parent.slug == "spices"

    @pytest.mark.asyncio
    async def test_search_limit_and_blank_term(self, service, spices_chain):
        assert len(await service.search_categories("pepper", limit=1)) == 1
        assert await service.search_categories("   ") == []


class TestBulkImport:
    @pytest.mark.asyncio
    async def test_collects_success_and_errors_in_order(self, service, store):
        records = [
            {"name": "Tea"},
            {"name": "tea"},
            {"name": "  "},
            {"name": "Green Tea", "parent_id": 1},
        ]

        result = await service.bulk_import(records)

        assert [s.index for s in result.success] == [0, 3]
        assert [s.name for s in result.success] == ["Tea", "Green Tea"]
        assert result.success[0].message == "Successfully created"
        assert [e.index for e in result.errors] == [1, 2]
        assert result.errors[0].data == {"name": "tea"}
        assert "already exists" in result.errors[0].error

        tea = await store.find_by_id(result.success[0].category_id)
        assert tea.subcategory_ids == [result.success[1].category_id]


class TestSupplementaryReads:
    @pytest.mark.asyncio
    async def test_main_and_sub_categories(self, service, spices_chain):
        spices, _, _ = spices_chain
        await service.create_category({"name": "Herbs", "is_active": False})
        await service.create_category({"name": "Salts", "parent_id": spices.category_id, "is_active": False})

        assert [c.name for c in await service.get_main_categories()] == ["Spices"]
        assert [c.name for c in await service.get_subcategories(spices.category_id)] == ["Peppers"]
        assert [c.name for c in await service.get_active_categories()] == [
            "Chili Peppers", "Peppers", "Spices"
        ]

        with pytest.raises(CategoryNotFoundError):
            await service.get_subcategories(999)

    @pytest.mark.asyncio
    async def test_all_categories_is_unpaged(self, service):
        for index in range(30):
            await service.create_category({"name": f"Category {index:02d}", "is_active": index % 2 == 0})
        await service.create_category({"name": "Child", "parent_id": 1})

        everything = await service.get_all_categories()
        roots = await service.get_all_categories(roots_only=True)

        assert len(everything) == 31
        assert len(roots) == 30
        assert roots[-1].name == "Category 29"

    @pytest.mark.asyncio
    async def test_product_counts(self, store):
        counts = {1: 5}

        async def products_in(category_id):
            return counts.get(category_id, 0)

        service = CategoryService(store, reference_counter=products_in)
        await service.create_category({"name": "Tea"})
        await service.create_category({"name": "Coffee"})

        result = {c.name: c.product_count for c in await service.get_categories_with_product_counts()}
        assert result == {"Tea": 5, "Coffee": 0}


@pytest.mark.asyncio
async def test_spices_scenario(service, store, assert_invariants):
    spices = await service.create_category({"name": "Spices"})
    assert spices.seo.slug == "spices"

    peppers = await service.create_category({"name": "Peppers", "parent_id": spices.category_id})
    assert peppers.seo.slug == "peppers"

    with pytest.raises(DuplicateNameError):
        await service.create_category({"name": "Spices"})

    with pytest.raises(DuplicateSlugError):
        await service.create_category({"name": "Sweet Things", "seo": {"slug": "peppers"}})

    with pytest.raises(SelfParentError):
        await service.update_category(peppers.category_id, {"parent_id": peppers.category_id})

    chili = await service.create_category({"name": "Chili Peppers", "parent_id": peppers.category_id})
    with pytest.raises(CyclicParentError):
        await service.update_category(spices.category_id, {"parent_id": chili.category_id})

    with pytest.raises(HasSubcategoriesError):
        await service.delete_category(spices.category_id)

    await assert_invariants()

    await service.delete_category(chili.category_id)
    await service.delete_category(peppers.category_id)
    await service.delete_category(spices.category_id)

    assert await store.count(CategoryQuery()) == 0
