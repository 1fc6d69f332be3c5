from pydantic import BaseModel, Field, field_validator


class JobRow(BaseModel):
    """One ``url,name,tag1,tag2,...`` line of a submitted job."""

    url: str
    name: str = ""
    tags: list[str] = Field(default_factory=list)


class JobInput(BaseModel):
    """A validated job: the raw text handed to the stages plus its parsed rows.

    The stage programs receive ``csv_data`` verbatim; ``rows`` is only used
    for logging and sanity checks.
    """

    csv_data: str
    rows: list[JobRow] = Field(default_factory=list)

    @field_validator("csv_data")
    @classmethod
    def csv_data_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("csv_data must not be blank")
        return v
