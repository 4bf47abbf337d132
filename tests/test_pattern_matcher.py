from models import CategoryRuleModel
from services.pattern_matcher import compile_pattern, find_matching_rule, is_valid_pattern, match_category


def rule(rule_id, pattern, category_id, priority=0):
    return CategoryRuleModel(id=rule_id, pattern=pattern, category_id=category_id, priority=priority, is_active=True)


class TestMatchCategory:
    def test_first_matching_rule_wins(self):
        # rules arrive sorted by priority, so the earlier one must win even though both match
        rules = [rule(1, "uber", 10, priority=5), rule(2, "uber.*eats", 20, priority=1)]
        assert match_category("UBER EATS SAO PAULO", rules) == 10

    def test_matching_is_case_insensitive(self):
        assert match_category("Netflix.com", [rule(1, "NETFLIX", 7)]) == 7

    def test_pattern_can_match_anywhere_in_description(self):
        assert match_category("PAG*IFOOD 1234", [rule(1, "ifood", 3)]) == 3

    def test_no_match_returns_none(self):
        assert match_category("POSTO SHELL", [rule(1, "uber", 10)]) is None

    def test_empty_rule_list_returns_none(self):
        assert match_category("anything", []) is None

    def test_invalid_pattern_is_skipped(self):
        rules = [rule(1, "(unclosed", 10), rule(2, "mercado", 20)]
        assert match_category("MERCADO LIVRE", rules) == 20

    def test_find_matching_rule_returns_rule(self):
        rules = [rule(1, "spotify", 10), rule(2, "amazon", 20)]
        assert find_matching_rule("AMAZON PRIME", rules).id == 2


class TestCompilePattern:
    def test_invalid_pattern_compiles_to_none(self):
        assert compile_pattern("[a-") is None
        assert not is_valid_pattern("[a-")

    def test_compiled_patterns_are_cached(self):
        assert compile_pattern(r"farm[aá]cia") is compile_pattern(r"farm[aá]cia")
