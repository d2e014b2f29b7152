"""Packages a pivot matrix and an entity view into the report returned to callers. No I/O."""

from .costs import grand_margin
from .periods import period_label
from .schemas import EntityView, PeriodColumn, PivotMatrix, PivotQuery, PivotReport, PivotReportRow


def assemble_report(query: PivotQuery, matrix: PivotMatrix, view: EntityView,
                    fetched_row_count: int = 0) -> PivotReport:
    periods = [
        PeriodColumn(
            period=period, label=period_label(period),
            total_quantity=matrix.period_totals[period].total_quantity,
            total_amount=matrix.period_totals[period].total_amount,
        )
        for period in matrix.periods
    ]
    rows = []
    for entity in view.entities:
        agg = matrix.entity_totals[entity]
        rows.append(PivotReportRow(
            entity=entity, name=agg.name,
            cells=[matrix.cells[entity][period] for period in matrix.periods],
            total_quantity=agg.total_quantity, total_amount=agg.total_amount,
            unit_cost=agg.unit_cost, total_cost=agg.total_cost,
            margin=agg.margin, margin_percent=agg.margin_percent,
        ))
    margin, margin_percent = grand_margin(matrix)
    return PivotReport(
        query=query,
        periods=periods,
        rows=rows,
        matrix=matrix,
        entity_count=len(matrix.entities),
        hidden_zero_entity_count=view.hidden_zero_entity_count,
        fetched_row_count=fetched_row_count,
        skipped_row_count=matrix.skipped_row_count,
        grand_total=matrix.grand_total,
        grand_quantity=matrix.grand_quantity,
        grand_margin=margin,
        grand_margin_percent=margin_percent,
    )
