"""
Cost report figures: category totals, variances and variation sheets.

All amounts are Rand. A category row is the sum of its line items;
variation orders are carried as a separate "VARIATIONS" row where credits
reduce and debits increase the anticipated final cost.

    current variance  = anticipated final − previous report
    original variance = anticipated final − original budget
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger("voltline-cost-report")

VARIATIONS_CODE = "VO"
VARIATIONS_DESCRIPTION = "VARIATIONS"


@dataclass
class CategoryTotals:
    category_id: Optional[str]
    code: str
    description: str
    original_budget: float = 0.0
    previous_report: float = 0.0
    anticipated_final: float = 0.0
    current_variance: float = 0.0
    original_variance: float = 0.0
    percent_of_total: float = 0.0


@dataclass
class GrandTotals:
    original_budget: float = 0.0
    previous_report: float = 0.0
    anticipated_final: float = 0.0
    current_variance: float = 0.0
    original_variance: float = 0.0
    approved_variations: float = 0.0
    pending_variations: float = 0.0


@dataclass
class CostReportSummary:
    categories: List[CategoryTotals] = field(default_factory=list)
    grand_totals: GrandTotals = field(default_factory=GrandTotals)

    def to_dict(self) -> dict:
        return asdict(self)


def _num(value: Any) -> float:
    return float(value) if value is not None else 0.0


def signed_variation_amount(variation: Dict[str, Any]) -> float:
    """Credits count negative regardless of how the amount was captured."""
    amount = abs(_num(variation.get("total_amount")))
    return -amount if variation.get("is_credit") else amount


def variation_line_amount(quantity: Optional[float], rate: Optional[float]) -> float:
    return round(_num(quantity) * _num(rate), 2)


def variation_total(line_items: Iterable[Dict[str, Any]]) -> float:
    """Sum of a variation sheet's lines, using ``amount`` when set else qty × rate."""
    total = 0.0
    for item in line_items:
        amount = item.get("amount")
        if amount is None:
            amount = variation_line_amount(item.get("quantity"), item.get("rate"))
        total += _num(amount)
    return round(total, 2)


def _finish(row: CategoryTotals):
    row.original_budget = round(row.original_budget, 2)
    row.previous_report = round(row.previous_report, 2)
    row.anticipated_final = round(row.anticipated_final, 2)
    row.current_variance = round(row.anticipated_final - row.previous_report, 2)
    row.original_variance = round(row.anticipated_final - row.original_budget, 2)


def calculate_category_totals(
    categories: List[Dict[str, Any]],
    line_items: List[Dict[str, Any]],
) -> List[CategoryTotals]:
    """One row per category in ``display_order`` (then code), summing its line items."""
    by_category: Dict[str, List[Dict[str, Any]]] = {}
    for item in line_items:
        by_category.setdefault(str(item.get("category_id")), []).append(item)

    ordered = sorted(categories, key=lambda c: (c.get("display_order") or 0, c.get("code") or ""))
    rows = []
    for cat in ordered:
        row = CategoryTotals(
            category_id=str(cat.get("id")),
            code=cat.get("code") or "",
            description=cat.get("description") or "",
        )
        for item in by_category.get(str(cat.get("id")), []):
            row.original_budget += _num(item.get("original_budget"))
            row.previous_report += _num(item.get("previous_report"))
            row.anticipated_final += _num(item.get("anticipated_final"))
        _finish(row)
        rows.append(row)
    return rows


def calculate_variations_row(variations: List[Dict[str, Any]]) -> CategoryTotals:
    """Variations have no budget; previous and anticipated both carry the signed sum."""
    total = sum(signed_variation_amount(v) for v in variations)
    row = CategoryTotals(
        category_id=None,
        code=VARIATIONS_CODE,
        description=VARIATIONS_DESCRIPTION,
        previous_report=total,
        anticipated_final=total,
    )
    _finish(row)
    return row


def build_cost_report_summary(
    categories: List[Dict[str, Any]],
    line_items: List[Dict[str, Any]],
    variations: List[Dict[str, Any]],
) -> CostReportSummary:
    rows = calculate_category_totals(categories, line_items)
    if variations:
        rows.append(calculate_variations_row(variations))

    grand = GrandTotals()
    for row in rows:
        grand.original_budget += row.original_budget
        grand.previous_report += row.previous_report
        grand.anticipated_final += row.anticipated_final

    for row in rows:
        row.percent_of_total = (
            round(row.anticipated_final / grand.anticipated_final * 100, 2)
            if grand.anticipated_final else 0.0
        )

    grand.original_budget = round(grand.original_budget, 2)
    grand.previous_report = round(grand.previous_report, 2)
    grand.anticipated_final = round(grand.anticipated_final, 2)
    grand.current_variance = round(grand.anticipated_final - grand.previous_report, 2)
    grand.original_variance = round(grand.anticipated_final - grand.original_budget, 2)
    grand.approved_variations = round(sum(
        signed_variation_amount(v) for v in variations if (v.get("status") or "approved") == "approved"
    ), 2)
    grand.pending_variations = round(sum(
        signed_variation_amount(v) for v in variations if v.get("status") == "pending"
    ), 2)

    logger.debug("Cost report summary: %d rows, anticipated final R%.2f", len(rows), grand.anticipated_final)
    return CostReportSummary(categories=rows, grand_totals=grand)


def format_currency(value: Optional[float]) -> str:
    """'R 1 234 567.89' style used on the printed reports."""
    if value is None:
        return "R 0.00"
    sign = "-" if value < 0 else ""
    return f"{sign}R {abs(value):,.2f}".replace(",", " ")
