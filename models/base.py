"""
Base schemas for all models.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class ImportSchema(BaseSchema):
    """
    Base for import wire models.

    The import wizard speaks camelCase (sourceHeader, rowIndex, ...);
    Python code uses snake_case. Both spellings are accepted on input,
    camelCase is emitted on output.

    Strings are NOT stripped: raw spreadsheet headers are used verbatim
    as row keys.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=False,
        coerce_numbers_to_str=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True
    )
