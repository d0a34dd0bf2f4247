# test_sync_models.py
#
# Imports
import pytest
#
# Local Imports
from offline_sync.Sync.exceptions import InvalidDecisionError
from offline_sync.Sync.sync_models import ConflictAnswer, DecisionChoice, parse_conflict_answer
#
#######################################################################################################################
#
# Tests


class TestParseConflictAnswer:

    @pytest.mark.parametrize("raw,expected", [
        ("server", ConflictAnswer.use_server()),
        (" Client ", ConflictAnswer.use_client()),
        ("skip", ConflictAnswer.skip()),
        (ConflictAnswer.skip(), ConflictAnswer.skip()),
        ({"text": "merged"}, ConflictAnswer.custom({"text": "merged"})),
        ('{"text": "merged"}', ConflictAnswer.custom({"text": "merged"})),
    ])
    def test_accepted_shapes(self, raw, expected):
        assert parse_conflict_answer(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ({"choice": "server"}, ConflictAnswer.use_server()),
        ({"choice": "skip"}, ConflictAnswer.skip()),
        ('{"choice": "client"}', ConflictAnswer.use_client()),
        ({"choice": "custom", "record": {"text": "x"}}, ConflictAnswer.custom({"text": "x"})),
    ])
    def test_answer_shaped_dicts_are_answers_not_records(self, raw, expected):
        assert parse_conflict_answer(raw) == expected

    def test_record_with_unknown_choice_value_is_custom(self):
        answer = parse_conflict_answer({"choice": "red", "text": "x"})
        assert answer.choice == DecisionChoice.CUSTOM
        assert answer.record == {"choice": "red", "text": "x"}

    @pytest.mark.parametrize("raw", [
        {"choice": "custom"},
        {"choice": "server", "record": {"text": "x"}},
        "{not json",
        "[1, 2]",
        42,
        None,
    ])
    def test_malformed_answers_raise(self, raw):
        with pytest.raises(InvalidDecisionError):
            parse_conflict_answer(raw)

#
# End of test_sync_models.py
#######################################################################################################################
