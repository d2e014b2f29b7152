"""Base model for rows imported into the reporting database.

Every imported record gets a KSUID public id, so rows loaded in one batch sort
in load order, plus created_at / updated_at stamps that show when a row was
first loaded and when a reload last touched it."""

from tortoise import fields, models
from ksuid import ksuid


def generate_ksuid() -> str:
    return str(ksuid.Ksuid())


class ImportedRecord(models.Model):
    public_id = fields.CharField(
        max_length=27, unique=True, default=generate_ksuid, db_index=True
    )
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True
