"""Sales pivot reports

Builds entity x period sales matrices (customer, salesperson, category or item
by month or ISO week) from the transaction store, with unit-cost margins,
sorting and zero filtering. The HTTP endpoints delegate to the service module,
which runs the fetch -> pivot -> cost join -> sort -> assemble pipeline."""
