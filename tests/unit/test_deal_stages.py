"""Tests for the deal stage order and transition table."""

import pytest

from app.core.errors import DealTerminal, InvalidTransition
from app.models.deal import DealStage
from app.services.deal_pipeline import (
    ALLOWED_TRANSITIONS,
    PIPELINE_ORDER,
    check_transition,
    is_commission_eligible,
    is_terminal,
    next_stage,
    stage_rank,
)


class TestStageOrder:

    def test_enum_declaration_matches_pipeline_order(self):
        assert list(DealStage)[:-1] == PIPELINE_ORDER
        assert list(DealStage)[-1] == DealStage.DECLINED

    def test_next_stage_walks_the_pipeline(self):
        stage = DealStage.QUOTE_REQUEST_RECEIVED
        visited = [stage]
        while next_stage(stage):
            stage = next_stage(stage)
            visited.append(stage)

        assert visited == PIPELINE_ORDER

    def test_terminal_stages_have_no_successor(self):
        assert next_stage(DealStage.COMPLETED) is None
        assert next_stage(DealStage.DECLINED) is None

    def test_declined_ranks_last(self):
        assert stage_rank(DealStage.DECLINED) > max(stage_rank(s) for s in PIPELINE_ORDER)

    def test_rank_accepts_plain_strings(self):
        assert stage_rank("quote_sent") == 1


class TestTransitionTable:

    def test_every_stage_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(DealStage)

    def test_live_stages_allow_successor_and_declined(self):
        for stage in PIPELINE_ORDER[:-1]:
            assert ALLOWED_TRANSITIONS[stage] == {next_stage(stage), DealStage.DECLINED}

    def test_terminal_stages_allow_nothing(self):
        assert ALLOWED_TRANSITIONS[DealStage.COMPLETED] == frozenset()
        assert ALLOWED_TRANSITIONS[DealStage.DECLINED] == frozenset()

    def test_skip_is_rejected(self):
        with pytest.raises(InvalidTransition):
            check_transition(DealStage.QUOTE_SENT, DealStage.AGREEMENT_SENT)

    def test_reverse_is_rejected(self):
        with pytest.raises(InvalidTransition):
            check_transition(DealStage.APPROVED, DealStage.QUOTE_SENT)

    def test_same_stage_is_rejected(self):
        with pytest.raises(InvalidTransition):
            check_transition(DealStage.QUOTE_SENT, DealStage.QUOTE_SENT)

    def test_terminal_current_stage(self):
        for stage in (DealStage.COMPLETED, DealStage.DECLINED):
            with pytest.raises(DealTerminal):
                check_transition(stage, DealStage.DECLINED)

    def test_declined_from_any_live_stage(self):
        for stage in PIPELINE_ORDER[:-1]:
            check_transition(stage, DealStage.DECLINED)

    def test_is_terminal(self):
        assert is_terminal(DealStage.COMPLETED)
        assert not is_terminal(DealStage.INVOICE_RECEIVED)


class TestCommissionEligibility:

    def test_eligible_from_approved(self):
        eligible = [s for s in DealStage if is_commission_eligible(s)]
        assert eligible == [
            DealStage.APPROVED,
            DealStage.LIVE_CONFIRM_LTR,
            DealStage.INVOICE_RECEIVED,
            DealStage.COMPLETED,
        ]
