from decimal import Decimal

from src.stockledger.engine.processor import CommandEngine, PROFIT_NA
from src.stockledger.ledger.ledger import (
    REASON_INSUFFICIENT_STOCK,
    REASON_INVALID_VALUE,
    REASON_MALFORMED,
    REASON_UNKNOWN_COMMAND,
    REASON_UNMATCHED_RETURN,
)


def run(*lines):
    eng = CommandEngine()
    out = eng.process_lines(lines)
    return eng, out


def test_order_profit_and_check():
    _, out = run("STOCK A 10 5.00", "ORDER A 4 8.00", "CHECK", "PROFIT")
    assert out == ["A: 6", "Profit/Loss: $12.00"]


def test_return_reverses_profit_but_not_stock():
    _, out = run(
        "STOCK A 10 5.00", "ORDER A 4 8.00",
        "RETURN A 4 8.00", "PROFIT", "CHECK",
    )
    assert out == ["Profit/Loss: $0.00", "A: 6"]


def test_insufficient_stock_invalidates():
    eng, out = run("STOCK B 1 2.00", "ORDER B 5 3.00", "PROFIT", "CHECK")
    assert out == [PROFIT_NA]
    assert eng.ledger.invalid_reason == REASON_INSUFFICIENT_STOCK


def test_return_without_sale_invalidates():
    eng, out = run("RETURN C 1 2.00", "PROFIT")
    assert out == [PROFIT_NA]
    assert eng.ledger.invalid_reason == REASON_UNMATCHED_RETURN


def test_discount_applies_to_sell_price():
    # effective sell 10.00 * 50% = 5.00; 2 * (5.00 - 4.00) = 2.00
    _, out = run("STOCK D 5 4.00", "DISCOUNT D 50", "ORDER D 2 10.00", "PROFIT")
    assert out == ["Profit/Loss: $2.00"]


def test_expire_writes_off_cost():
    _, out = run("STOCK E 3 1.00", "EXPIRE E 2", "PROFIT", "CHECK")
    assert out == ["Profit/Loss: $-2.00", "E: 1"]


def test_order_consumes_batches_fifo():
    eng, out = run("STOCK A 2 1.00", "STOCK A 3 2.00", "ORDER A 4 5.00", "PROFIT", "CHECK")
    # 2 * (5 - 1) + 2 * (5 - 2)
    assert out == ["Profit/Loss: $14.00", "A: 1"]
    queue = eng.ledger.items["A"].stock_queue
    assert len(queue) == 1
    assert queue[0].quantity == 1 and queue[0].unit_cost == Decimal("2.00")


def test_expire_consumes_oldest_batch_first():
    _, out = run("STOCK A 1 1.00", "STOCK A 5 3.00", "EXPIRE A 2", "PROFIT")
    assert out == ["Profit/Loss: $-4.00"]


def test_return_uses_the_sale_cost_layers_not_current_stock():
    eng, out = run(
        "STOCK A 2 1.00", "STOCK A 3 2.00", "ORDER A 4 5.00",
        "STOCK A 5 10.00",
        "RETURN A 3 5.00", "PROFIT",
        "RETURN A 1 5.00", "PROFIT",
        "CHECK",
    )
    # first return: 2 * (5 - 1) + 1 * (5 - 2) = 11 off 14
    assert out == ["Profit/Loss: $3.00", "Profit/Loss: $0.00", "A: 6"]
    assert "5.00" not in eng.ledger.items["A"].sales_by_base_price


def test_return_matches_most_recent_sale_first():
    _, out = run(
        "STOCK A 10 1.00",
        "DISCOUNT A 50",
        "ORDER A 2 4.00",      # effective 2.00, +2
        "DISCOUNT_END A",
        "ORDER A 3 4.00",      # effective 4.00, +9
        "RETURN A 1 4.00",     # later sale: -3
        "PROFIT",
        "RETURN A 3 4.00",     # 2 from later (-6), 1 from earlier (-1)
        "PROFIT",
        "CHECK",
    )
    assert out == ["Profit/Loss: $8.00", "Profit/Loss: $1.00", "A: 5"]


def test_return_more_than_sold_invalidates():
    eng, out = run("STOCK A 5 1.00", "ORDER A 2 3.00", "RETURN A 3 3.00", "PROFIT")
    assert out == [PROFIT_NA]
    assert eng.ledger.invalid_reason == REASON_UNMATCHED_RETURN


def test_return_price_key_collision_matches():
    _, out = run("STOCK A 5 1.00", "ORDER A 1 2.004", "RETURN A 1 2.001", "PROFIT")
    assert out == ["Profit/Loss: $0.00"]


def test_return_at_other_price_does_not_match():
    _, out = run("STOCK A 5 1.00", "ORDER A 1 2.00", "RETURN A 1 2.01", "PROFIT")
    assert out == [PROFIT_NA]


def test_discount_frozen_at_order_time():
    _, out = run(
        "STOCK A 4 1.00",
        "DISCOUNT A 50",
        "ORDER A 2 4.00",   # effective 2.00
        "DISCOUNT A 0",
        "DISCOUNT_END A",
        "DISCOUNT_END A",
        "RETURN A 2 4.00",  # reverses at 2.00, not 4.00
        "PROFIT",
    )
    assert out == ["Profit/Loss: $0.00"]


def test_discount_stack_is_lifo():
    eng, _ = run("DISCOUNT A 10", "DISCOUNT A 50", "DISCOUNT_END A")
    assert eng.ledger.items["A"].active_discount == 10


def test_negative_discount_raises_price():
    _, out = run("STOCK A 1 1.00", "DISCOUNT A -10", "ORDER A 1 10.00", "PROFIT")
    assert out == ["Profit/Loss: $10.00"]


def test_discount_end_on_empty_stack_is_noop():
    eng, out = run("STOCK A 2 1.00", "DISCOUNT_END A", "ORDER A 1 3.00", "PROFIT")
    assert out == ["Profit/Loss: $2.00"]
    assert eng.ledger.invalid is False


def test_zero_quantity_commands_are_noops():
    eng, out = run(
        "STOCK A 0 5.00", "ORDER A 0 1.00", "EXPIRE A 0", "RETURN A 0 1.00",
        "CHECK", "PROFIT",
    )
    # item never referenced past the no-op checks
    assert out == ["Profit/Loss: $0.00"]
    assert eng.ledger.items == {}


def test_check_lists_items_in_first_reference_order():
    _, out = run("DISCOUNT Z 5", "STOCK A 3 1.00", "DISCOUNT_END M", "STOCK Z 1 1.00", "CHECK")
    assert out == ["Z: 1", "A: 3", "M: 0"]


def test_invalid_values():
    for line in ("STOCK A 1 0", "STOCK A 1 -2.00", "STOCK A -1 2.00", "ORDER A 1 -1.00", "EXPIRE A -3"):
        eng, out = run(line, "PROFIT")
        assert out == [PROFIT_NA], line
        assert eng.ledger.invalid_reason == REASON_INVALID_VALUE, line


def test_malformed_commands():
    for line in (
        "STOCK A 1",
        "STOCK A x 1.00",
        "STOCK A 1 abc",
        "STOCK  A 1 1.00",
        "ORDER A 1 1.00 extra",
        "EXPIRE A",
        "RETURN A 1",
        "DISCOUNT A",
        "DISCOUNT A half",
        "DISCOUNT_END",
        "DISCOUNT_END A B",
    ):
        eng, out = run(line, "PROFIT")
        assert out == [PROFIT_NA], line
        assert eng.ledger.invalid_reason == REASON_MALFORMED, line


def test_unknown_command_invalidates():
    eng, out = run("STOCK A 1 1.00", "SELL A 1 2.00", "PROFIT")
    assert out == [PROFIT_NA]
    assert eng.ledger.invalid_reason == REASON_UNKNOWN_COMMAND


def test_lowercase_command_is_unknown_while_valid():
    eng, out = run("profit")
    assert out == []
    assert eng.ledger.invalid_reason == REASON_UNKNOWN_COMMAND


def test_latch_suppresses_everything_but_profit():
    eng, out = run(
        "STOCK A 5 1.00",
        "EXPIRE A 6",
        "STOCK A 5 1.00",
        "CHECK",
        "PROFIT",
        "profit",
        "BOGUS",
    )
    assert out == [PROFIT_NA, PROFIT_NA]
    assert eng.ledger.items["A"].total_stock_quantity == 5


def test_check_and_profit_ignore_extra_tokens():
    _, out = run("STOCK A 1 1.00", "CHECK all", "PROFIT now")
    assert out == ["A: 1", "Profit/Loss: $0.00"]


def test_lines_are_trimmed_and_blanks_skipped():
    eng, out = run("", "   ", "  STOCK A 2 1.50  ", "\tCHECK")
    assert out == ["A: 2"]
    assert eng.line_no == 4


def test_stock_total_matches_batches():
    eng, _ = run("STOCK A 3 1.00", "STOCK A 4 2.00", "ORDER A 5 3.00", "EXPIRE A 1")
    state = eng.ledger.items["A"]
    assert state.total_stock_quantity == sum(b.quantity for b in state.stock_queue) == 1


def test_sale_record_segments_match_remaining():
    eng, _ = run("STOCK A 2 1.00", "STOCK A 2 2.00", "ORDER A 3 4.00", "RETURN A 2 4.00")
    (sale,) = eng.ledger.items["A"].sales_by_base_price["4.00"]
    assert sale.remaining_quantity == 1
    assert [(s.quantity, s.unit_cost) for s in sale.segments] == [(1, Decimal("2.00"))]
