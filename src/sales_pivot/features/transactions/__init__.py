"""Sales transaction and unit-cost storage for the pivot reports.

Holds the Tortoise models for the consolidated sales table and the unit-cost
reference table, the import schemas used by the CLI, and the Tortoise-backed
implementations of the store interfaces consumed by the pivot engine."""
