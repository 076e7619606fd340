import pytest

from models.common import DeliveryStatus
from services.status_machine import (
    FORWARD_CHAIN,
    STATUS_LABELS,
    advance,
    allowed_next_statuses,
    is_terminal,
    is_valid_transition,
    status_rank,
)


def test_advance_walks_the_forward_chain():
    status = DeliveryStatus.PENDING
    walked = [status]
    while not advance(status).already_terminal:
        status = advance(status).status
        walked.append(status)
    assert walked == FORWARD_CHAIN


@pytest.mark.parametrize("status", [DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.RETURNED])
def test_advance_on_terminal_is_flagged_noop(status):
    result = advance(status)
    assert result.status == status
    assert result.already_terminal
    assert is_terminal(status)
    assert allowed_next_statuses(status) == []


@pytest.mark.parametrize("side_branch", [DeliveryStatus.FAILED, DeliveryStatus.RETURNED])
def test_side_branches_only_from_transit_or_out_for_delivery(side_branch):
    assert is_valid_transition(DeliveryStatus.IN_TRANSIT, side_branch)
    assert is_valid_transition(DeliveryStatus.OUT_FOR_DELIVERY, side_branch)
    assert not is_valid_transition(DeliveryStatus.PENDING, side_branch)
    assert not is_valid_transition(DeliveryStatus.COLLECTED, side_branch)
    assert not is_valid_transition(DeliveryStatus.DELIVERED, side_branch)


def test_accepts_raw_string_values():
    assert is_terminal("delivered")
    assert not is_terminal("in_transit")
    assert advance("collected").status == DeliveryStatus.IN_TRANSIT


def test_every_status_has_a_label():
    assert set(STATUS_LABELS) == set(DeliveryStatus)


def test_status_rank_follows_the_chain():
    assert [status_rank(s) for s in FORWARD_CHAIN] == list(range(len(FORWARD_CHAIN)))
    assert status_rank("failed") == status_rank(DeliveryStatus.RETURNED) > status_rank(DeliveryStatus.DELIVERED)
