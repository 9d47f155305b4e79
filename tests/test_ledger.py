import random

import pytest

from fuelbook.errors import ValidationError
from fuelbook.ledger import IdSequence, TransactionLedger, aggregate
from fuelbook.schemas import PaymentMethod


def _scenario_ledger() -> TransactionLedger:
    ledger = TransactionLedger()
    ledger.add(100, 5, "cash")
    ledger.add(200, 10, "card")
    ledger.add(50, 2, "online")
    return ledger


def test_add_prepends_and_validates() -> None:
    ledger = TransactionLedger()
    first = ledger.add(100, 0, "cash")
    second = ledger.add(0, 3, "card")
    assert [t.id for t in ledger] == [second.id, first.id]
    assert second.payment_method is PaymentMethod.CARD

    with pytest.raises(ValidationError):
        ledger.add(0, 0, "cash")
    with pytest.raises(ValidationError):
        ledger.add(10, -1, "cash")
    with pytest.raises(ValidationError):
        ledger.add(10, 1, "cheque")
    assert len(ledger) == 2


@pytest.mark.parametrize(
    "amount, discount",
    [(float("inf"), 1), (float("nan"), 1), (10, float("inf")), (10, float("nan"))],
)
def test_add_rejects_non_finite_numbers(amount, discount) -> None:
    ledger = TransactionLedger()
    with pytest.raises(ValidationError):
        ledger.add(amount, discount, "cash")
    assert len(ledger) == 0


def test_combined_online_bucket_scenario() -> None:
    totals = _scenario_ledger().aggregate()
    assert totals.cash_total == 100
    assert totals.cash_discount == 5
    assert totals.card_total == 200
    assert totals.card_discount == 10
    assert totals.online_total == 50
    assert totals.online_discount == 12
    assert totals.pure_online_discount == 2
    assert totals.grand_total == 350
    assert totals.total_discount == 17
    assert totals.total_transactions == 3


def test_archived_totals_keep_pure_online_discount() -> None:
    archived = _scenario_ledger().aggregate().to_shift_totals()
    assert archived.online_discount == 2
    assert archived.online_bucket_discount == 12
    assert archived.total_discount == 17


def test_aggregate_identities_hold_for_random_ledgers() -> None:
    rng = random.Random(7)
    for _ in range(50):
        ledger = TransactionLedger()
        for _ in range(rng.randint(1, 30)):
            ledger.add(
                round(rng.uniform(0, 500), 2),
                round(rng.uniform(0.01, 20), 2),
                rng.choice(["cash", "card", "online"]),
            )
        totals = ledger.aggregate()
        assert totals.grand_total == totals.cash_total + totals.card_total + totals.online_total
        assert totals.total_discount == pytest.approx(
            totals.cash_discount + totals.card_discount + totals.pure_online_discount
        )
        assert totals.total_transactions == len(ledger)


def test_deleted_id_is_never_reused() -> None:
    ledger = TransactionLedger()
    created = ledger.add(10, 1, "cash")
    assert ledger.delete(created.id) is True
    replacement = ledger.add(10, 1, "cash")
    assert replacement.id > created.id


def test_delete_unknown_id_is_a_noop() -> None:
    ledger = _scenario_ledger()
    assert ledger.delete(12345) is False
    assert len(ledger) == 3


def test_update_payment_method_changes_only_the_method() -> None:
    ledger = _scenario_ledger()
    original = ledger.transactions[1]
    updated = ledger.update_payment_method(original.id, "online")
    assert updated.payment_method is PaymentMethod.ONLINE
    assert (updated.id, updated.amount, updated.discount, updated.timestamp) == (
        original.id,
        original.amount,
        original.discount,
        original.timestamp,
    )
    assert ledger.transactions[1] is updated
    assert ledger.update_payment_method(99, "cash") is None


def test_filter_is_lazy_and_ordered() -> None:
    ledger = _scenario_ledger()
    ledger.add(30, 1, "cash")
    cash = ledger.filter("cash")
    assert not isinstance(cash, list)
    assert [t.amount for t in cash] == [30, 100]
    assert len(list(ledger.filter("all"))) == 4
    assert len(ledger) == 4


def test_counts_and_filter_summary() -> None:
    ledger = _scenario_ledger()
    ledger.add(30, 1.5, "cash")
    assert ledger.counts() == {"cash": 2, "card": 1, "online": 1, "all": 4}
    assert ledger.filter_summary("cash") == {"count": 2, "total_amount": 130.0, "total_discount": 6.5}


def test_id_sequence_observes_existing_ids() -> None:
    ids = IdSequence()
    ids.observe([10**15])
    assert ids.next() == 10**15 + 1
    assert ids.next() == 10**15 + 2


def test_aggregate_of_nothing() -> None:
    totals = aggregate([])
    assert totals.grand_total == 0
    assert totals.total_transactions == 0
