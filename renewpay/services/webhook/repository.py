"""Insert-only persistence for payment records."""

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from renewpay.common.errors import PersistenceFailed
from renewpay.common.logging import logger
from renewpay.services.webhook.models import PaymentRecord


class PaymentRecordWriter:
    """Writes one `PaymentRecord` per completed payment in its own transaction."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def insert(self, record: PaymentRecord) -> PaymentRecord:
        """Insert and commit; any store error becomes `PersistenceFailed`.

        A duplicate `transaction_key` is reported with `conflict=True`.
        """

        with self.session_factory() as db:
            db.add(record)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                logger.error("payment record conflict transaction_key=%s", record.transaction_key)
                raise PersistenceFailed(
                    "payment already recorded",
                    details=str(exc.orig),
                    conflict=True,
                ) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("payment record insert failed transaction_key=%s error=%s", record.transaction_key, exc)
                raise PersistenceFailed(
                    "failed to save payment record",
                    details=str(getattr(exc, "orig", None) or exc),
                ) from exc
        return record
