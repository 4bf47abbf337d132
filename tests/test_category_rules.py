from datetime import date

import pytest

from conftest import make_category, make_transaction
from errors import CategoryNotFound, CategoryRuleNotFound, InvalidPattern, PatternTooLong, RulePatternExists
from schemas import CategoryRuleIn, CategoryRuleUpdate, RulePriority
from services.category_rule_service import CategoryRuleService


@pytest.fixture
async def food(session, user):
    return await make_category(session, user, "Food")


class TestCreateRule:
    async def test_priority_defaults_to_top(self, session, user, food):
        service = CategoryRuleService(session)
        first = await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        second = await service.create(user.id, CategoryRuleIn(pattern="rappi", category_id=food.id))

        assert first.priority == 1
        assert second.priority == 2
        assert [r.pattern for r in await service.list_all(user.id)] == ["rappi", "ifood"]

    async def test_explicit_priority_is_kept(self, session, user, food):
        rule = await CategoryRuleService(session).create(
            user.id, CategoryRuleIn(pattern="ifood", category_id=food.id, priority=50)
        )
        assert rule.priority == 50

    async def test_pattern_is_trimmed(self, session, user, food):
        rule = await CategoryRuleService(session).create(user.id, CategoryRuleIn(pattern="  ifood ", category_id=food.id))
        assert rule.pattern == "ifood"

    async def test_invalid_regex_rejected(self, session, user, food):
        with pytest.raises(InvalidPattern):
            await CategoryRuleService(session).create(user.id, CategoryRuleIn(pattern="(ifood", category_id=food.id))

    async def test_blank_pattern_rejected(self, session, user, food):
        with pytest.raises(InvalidPattern):
            await CategoryRuleService(session).create(user.id, CategoryRuleIn(pattern="   ", category_id=food.id))

    async def test_long_pattern_rejected(self, session, user, food):
        with pytest.raises(PatternTooLong):
            await CategoryRuleService(session).create(user.id, CategoryRuleIn(pattern="a" * 256, category_id=food.id))

    async def test_duplicate_pattern_rejected(self, session, user, food):
        service = CategoryRuleService(session)
        await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        with pytest.raises(RulePatternExists):
            await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))

    async def test_same_pattern_allowed_for_other_user(self, session, user, other_user, food):
        theirs = await make_category(session, other_user, "Food")
        service = CategoryRuleService(session)
        await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))

        rule = await service.create(other_user.id, CategoryRuleIn(pattern="ifood", category_id=theirs.id))
        assert rule.user_id == other_user.id

    async def test_category_of_another_user_rejected(self, session, user, other_user):
        theirs = await make_category(session, other_user, "Food")
        with pytest.raises(CategoryNotFound):
            await CategoryRuleService(session).create(user.id, CategoryRuleIn(pattern="ifood", category_id=theirs.id))


class TestUpdateAndDelete:
    async def test_update_fields(self, session, user, food):
        transport = await make_category(session, user, "Transport")
        service = CategoryRuleService(session)
        rule = await service.create(user.id, CategoryRuleIn(pattern="uber", category_id=food.id))

        updated = await service.update(
            user.id, rule.id, CategoryRuleUpdate(pattern="uber|99", category_id=transport.id, is_active=False)
        )

        assert updated.pattern == "uber|99"
        assert updated.category_id == transport.id
        assert updated.is_active is False

    async def test_update_to_existing_pattern_rejected(self, session, user, food):
        service = CategoryRuleService(session)
        await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        rule = await service.create(user.id, CategoryRuleIn(pattern="rappi", category_id=food.id))

        with pytest.raises(RulePatternExists):
            await service.update(user.id, rule.id, CategoryRuleUpdate(pattern="ifood"))

    async def test_update_with_invalid_pattern_rejected(self, session, user, food):
        service = CategoryRuleService(session)
        rule = await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        with pytest.raises(InvalidPattern):
            await service.update(user.id, rule.id, CategoryRuleUpdate(pattern="[a-"))

    async def test_delete(self, session, user, food):
        service = CategoryRuleService(session)
        rule = await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        rule_id = rule.id

        await service.delete(user.id, rule_id)

        with pytest.raises(CategoryRuleNotFound):
            await service.get(user.id, rule_id)

    async def test_rule_of_another_user_not_found(self, session, user, other_user, food):
        service = CategoryRuleService(session)
        rule = await service.create(user.id, CategoryRuleIn(pattern="ifood", category_id=food.id))
        with pytest.raises(CategoryRuleNotFound):
            await service.delete(other_user.id, rule.id)


class TestReorder:
    async def test_reorder_changes_evaluation_order(self, session, user, food):
        service = CategoryRuleService(session)
        a = await service.create(user.id, CategoryRuleIn(pattern="a", category_id=food.id))
        b = await service.create(user.id, CategoryRuleIn(pattern="b", category_id=food.id))

        rules = await service.reorder(user.id, [RulePriority(id=a.id, priority=10), RulePriority(id=b.id, priority=5)])

        assert [r.pattern for r in rules] == ["a", "b"]
        assert [r.priority for r in rules] == [10, 5]

    async def test_reorder_with_foreign_rule_changes_nothing(self, session, user, other_user, food):
        theirs = await make_category(session, other_user, "Food")
        service = CategoryRuleService(session)
        mine = await service.create(user.id, CategoryRuleIn(pattern="a", category_id=food.id))
        foreign = await service.create(other_user.id, CategoryRuleIn(pattern="b", category_id=theirs.id))

        with pytest.raises(CategoryRuleNotFound):
            await service.reorder(
                user.id, [RulePriority(id=mine.id, priority=99), RulePriority(id=foreign.id, priority=1)]
            )
        assert (await service.get(user.id, mine.id)).priority == 1


class TestPatternDryRun:
    async def test_returns_matches_newest_first(self, session, user):
        await make_transaction(session, user, "UBER TRIP", "-10.00", date(2024, 11, 1))
        await make_transaction(session, user, "Uber Eats", "-30.00", date(2024, 11, 3))
        await make_transaction(session, user, "NETFLIX", "-55.90", date(2024, 11, 2))

        result = await CategoryRuleService(session).test_pattern(user.id, "uber")

        assert result.match_count == 2
        assert [t.description for t in result.matching_transactions] == ["Uber Eats", "UBER TRIP"]

    async def test_limit_caps_returned_rows_not_count(self, session, user):
        for day in range(1, 6):
            await make_transaction(session, user, f"IFOOD #{day}", "-20.00", date(2024, 11, day))

        result = await CategoryRuleService(session).test_pattern(user.id, "ifood", limit=2)

        assert result.match_count == 5
        assert len(result.matching_transactions) == 2

    async def test_invalid_pattern_rejected(self, session, user):
        with pytest.raises(InvalidPattern):
            await CategoryRuleService(session).test_pattern(user.id, "(")
