# services/invoice_store.py
"""
Invoice Store - durable table of invoice/transaction records.

This is the single source of truth for ``payment_status``. Status changes
are made with one conditional UPDATE each (compare-and-set) so that
concurrent webhook and polling requests, possibly on different machines,
cannot both observe the unpaid -> paid transition.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Invoice, PaymentStatus
from services.errors import PersistenceError

logger = logging.getLogger(__name__)


class InvoiceStore:
     """Repository for ``Invoice`` rows bound to one SQLAlchemy session."""

     def __init__(self, db: Session):
          self.db = db

     def add(self, invoice: Invoice) -> Invoice:
          """
          Insert a new invoice row and commit it.

          Raises:
               PersistenceError: If the insert or commit fails.
          """
          try:
               self.db.add(invoice)
               self.db.commit()
          except SQLAlchemyError as e:
               self.db.rollback()
               raise PersistenceError(f"Failed to save transaction: {e}")
          self.db.refresh(invoice)
          return invoice

     def _first(self, *criteria) -> Optional[Invoice]:
          try:
               return self.db.query(Invoice).filter(*criteria).first()
          except SQLAlchemyError as e:
               self.db.rollback()
               logger.error(f"Failed to read transaction: {e}")
               raise PersistenceError(f"Failed to read transaction: {e}")

     def get_by_external_id(self, payment_invoice_id: str) -> Optional[Invoice]:
          """
          Look up a row by the processor's invoice id.

          Raises:
               PersistenceError: If the query fails.
          """
          return self._first(Invoice.payment_invoice_id == payment_invoice_id)

     def get_by_transaction_id(self, transaction_id: str) -> Optional[Invoice]:
          """Look up a row by the local ``bif_...`` transaction id."""
          return self._first(Invoice.transaction_id == transaction_id)

     def find(self, identifier: str) -> Optional[Invoice]:
          """Look up by external invoice id first, then by transaction id."""
          return self.get_by_external_id(identifier) or self.get_by_transaction_id(identifier)

     def mark_paid(self, payment_invoice_id: str) -> bool:
          """
          Set status to PAID unless it already is.

          Returns:
               True only for the request that performed the transition.
          """
          stmt = (
               update(Invoice)
               .where(
                    Invoice.payment_invoice_id == payment_invoice_id,
                    Invoice.payment_status != PaymentStatus.PAID,
               )
               .values(payment_status=PaymentStatus.PAID, updated_at=func.now())
               .execution_options(synchronize_session=False)
          )
          return self._execute_transition(stmt, payment_invoice_id, PaymentStatus.PAID)

     def mark_failed(self, payment_invoice_id: str) -> bool:
          """
          Set status to FAILED, only from UNPAID.

          Returns:
               True if the row was changed.
          """
          stmt = (
               update(Invoice)
               .where(
                    Invoice.payment_invoice_id == payment_invoice_id,
                    Invoice.payment_status == PaymentStatus.UNPAID,
               )
               .values(payment_status=PaymentStatus.FAILED, updated_at=func.now())
               .execution_options(synchronize_session=False)
          )
          return self._execute_transition(stmt, payment_invoice_id, PaymentStatus.FAILED)

     def _execute_transition(self, stmt, payment_invoice_id: str, target: PaymentStatus) -> bool:
          try:
               result = self.db.execute(stmt)
               self.db.commit()
          except SQLAlchemyError as e:
               self.db.rollback()
               logger.error(
                    f"Failed to update transaction status: invoice_id={payment_invoice_id}, "
                    f"target={target.value}, error={e}"
               )
               raise PersistenceError(f"Failed to update transaction status: {e}")

          # Drop any stale identity-map copy so later reads see the new status
          self.db.expire_all()
          return result.rowcount > 0

     def list(
          self,
          status: Optional[PaymentStatus] = None,
          provider: Optional[str] = None,
          form_id: Optional[int] = None,
          currency: Optional[str] = None,
          search: Optional[str] = None,
          page: int = 1,
          page_size: int = 50,
     ) -> Tuple[List[Invoice], int]:
          """
          Paginated, filtered listing for the admin transactions view.

          Returns:
               (invoices, total) where total ignores pagination
          """
          query = self.db.query(Invoice)
          if status is not None:
               query = query.filter(Invoice.payment_status == status)
          if provider:
               query = query.filter(Invoice.payment_provider == provider)
          if form_id:
               query = query.filter(Invoice.form_id == form_id)
          if currency:
               query = query.filter(Invoice.currency == currency)
          if search:
               like = f"%{search}%"
               query = query.filter(
                    or_(
                         Invoice.customer_email.ilike(like),
                         Invoice.customer_name.ilike(like),
                         Invoice.invoice_number.ilike(like),
                         Invoice.transaction_id.ilike(like),
                    )
               )

          total = query.count()
          offset = (page - 1) * page_size
          invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset).limit(page_size).all()
          return invoices, total
