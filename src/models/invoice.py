
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServiceLine(BaseModel):
    """One billed study. `value` is raw on input and an int after normalization."""
    model_config = ConfigDict(populate_by_name=True)

    code: str | None = None
    description: str | None = None
    value: str | int | float | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, v):
        return None if v is None else str(v)


class InvoiceRecord(BaseModel):
    """Structured invoice as returned by the extraction model (keys in Spanish)."""
    model_config = ConfigDict(populate_by_name=True)

    order_number: str = Field(alias="orden_servicio", min_length=1)
    date: str | None = Field(default=None, alias="fecha")
    hospital: str | None = None
    patient_name: str | None = None
    patient_id: str | None = None
    age: str | None = None
    sex: str | None = None
    entity: str | None = Field(default=None, alias="eps")
    plan: str | None = None
    services: list[ServiceLine] = Field(default_factory=list)

    @field_validator("order_number", mode="before")
    @classmethod
    def _order_number_as_text(cls, v):
        if isinstance(v, (int, float)):
            v = str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("patient_id", "age", mode="before")
    @classmethod
    def _as_text(cls, v):
        return None if v is None else str(v)

    @field_validator("services", mode="before")
    @classmethod
    def _services_list(cls, v):
        return [] if v is None else v


class LedgerRow(BaseModel):
    """A materialized spreadsheet row, in ledger column order."""
    fecha: str | None
    nombre: str | None
    id: str | None
    eps: str | None
    estudio: str | None
    costo: int
    costo_final: float
    observaciones: str = ""

    def as_cells(self) -> list:
        return [
            self.fecha,
            self.nombre,
            self.id,
            self.eps,
            self.estudio,
            self.costo,
            self.costo_final,
            self.observaciones,
        ]


class ProcessResult(BaseModel):
    """Outcome of a persisted invoice."""
    source_id: str | None = None
    record: InvoiceRecord
    rows_added: int
    invoice_id: int


class BatchFailure(BaseModel):
    source_id: str
    error: str
    duplicate: bool = False


class BatchResult(BaseModel):
    successful: list[ProcessResult] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)
