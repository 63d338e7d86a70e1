import asyncio
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from ..deps import UploadResponse, get_pipeline
from ...core.errors import DuplicateOrderNumberError, InvoiceProcessingError
from ...models.invoice import BatchResult
from ...services.pipeline import InvoicePipeline

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/upload", response_model=UploadResponse)
async def upload_invoice(
    file: UploadFile = File(...),
    pipeline: InvoicePipeline = Depends(get_pipeline),
):
    """
    Process one invoice photograph end to end.

    Responses:
    - 200: invoice merged into the ledger (rows_added may be 0 when no
      service passed the Doppler filter)
    - 409: the service order number was already processed
    - 500: extraction or persistence failed; detail carries the message
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No image file uploaded")

    try:
        result = await pipeline.process_one(content, file.filename)
    except DuplicateOrderNumberError as e:
        return JSONResponse(
            status_code=409,
            content={"error": "Invoice already processed", "orden_servicio": e.order_number},
        )
    except InvoiceProcessingError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return UploadResponse(
        success=True,
        message="Invoice processed successfully",
        data=result.record.model_dump(by_alias=True),
        rows_added=result.rows_added,
        invoice_id=result.invoice_id,
    )


@router.post("/batch", response_model=BatchResult)
async def upload_batch(
    files: list[UploadFile] = File(...),
    pipeline: InvoicePipeline = Depends(get_pipeline),
):
    """
    Process several photographs, four at a time.

    Failures (including duplicates) are listed per file next to the
    successful results; one bad image never fails the whole request.
    """
    images = []
    for index, upload in enumerate(files):
        images.append((upload.filename or f"file-{index}", await upload.read()))

    logger.info("Batch upload received", files=len(images))
    return await pipeline.process_batch(images)


@router.get("/processed")
async def list_processed_invoices(pipeline: InvoicePipeline = Depends(get_pipeline)):
    """List processed invoices, newest first, with a services summary"""
    invoices = await asyncio.to_thread(pipeline.store.list_all)
    return [
        {**invoice, "services_summary": "; ".join(f"{s['code']}: {s['description']}" for s in invoice["services"])}
        for invoice in invoices
    ]


@router.get("/check/{order_number}")
async def check_invoice(order_number: str, pipeline: InvoicePipeline = Depends(get_pipeline)):
    exists = await asyncio.to_thread(pipeline.store.exists_by_order_number, order_number)
    return {"exists": exists}


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: int, pipeline: InvoicePipeline = Depends(get_pipeline)):
    """
    Remove a processed invoice so its order number can be submitted again.

    Ledger rows already written for it are left untouched.
    """
    deleted = await asyncio.to_thread(pipeline.store.delete_invoice, invoice_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Invoice not found")

    logger.info("Processed invoice deleted", invoice_id=invoice_id)
    return {"success": True, "message": "Invoice deleted successfully"}
