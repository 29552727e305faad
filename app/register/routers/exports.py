from datetime import datetime
from fastapi import APIRouter, Depends, Response

from app.register.db.session import get_db
from app.register.services.exports import build_dataset, export_filename, render_csv

router = APIRouter()


@router.get("/register/exports/{table}.csv")
def export_table(table: str, db=Depends(get_db)):
    dataset = build_dataset(db, table)
    filename = export_filename(table, datetime.utcnow())
    return Response(
        content=render_csv(dataset),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
