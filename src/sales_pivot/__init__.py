"""Sales pivot reporting service.

Pulls sales transactions from the hosted store in bounded pages, folds them
into an entity x period matrix, joins unit costs for margins and serves the
result to the presentation layer."""
