# services/form_service.py
"""
Form lookup - read-only boundary to the stored form definitions.
"""
from typing import Optional

from sqlalchemy.orm import Session

from models import InvoiceForm
from models.invoice_form import INVOICE_FORM_TYPES


class FormRepository:
     """Resolves form ids to valid ``InvoiceForm`` definitions."""

     def __init__(self, db: Session):
          self.db = db

     def get_form(self, form_id: int) -> Optional[InvoiceForm]:
          """Return the form, or None if it is missing or not an invoice form."""
          if not form_id or form_id <= 0:
               return None
          form = self.db.query(InvoiceForm).filter(InvoiceForm.id == form_id).first()
          if form is None or form.form_type not in INVOICE_FORM_TYPES:
               return None
          return form
