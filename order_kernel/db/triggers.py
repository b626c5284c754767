"""
Module: order_kernel.db.triggers
Responsibility: Installing, removing and verifying the PostgreSQL
    immutability triggers (Layer 2 of 2).  This is the database-level
    complement to the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - outbound_movements rows: no UPDATE, no DELETE.
    - point_orders rows: DELETE only while PENDING or CANCELLED.
    - point_orders.paid_amount never decreases; payment_notes only grow by
      appending.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaced by SQLAlchemy as
      InternalError / DBAPIError).
    - OperationalError on deadlock during installation (caller retries).
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

OUTBOUND_MOVEMENT_SQL = """
CREATE OR REPLACE FUNCTION prevent_outbound_movement_mutation()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: outbound_movements row % cannot be %',
        OLD.id, lower(TG_OP);
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_outbound_movement_immutability_update ON outbound_movements;
CREATE TRIGGER trg_outbound_movement_immutability_update
    BEFORE UPDATE ON outbound_movements
    FOR EACH ROW EXECUTE FUNCTION prevent_outbound_movement_mutation();

DROP TRIGGER IF EXISTS trg_outbound_movement_immutability_delete ON outbound_movements;
CREATE TRIGGER trg_outbound_movement_immutability_delete
    BEFORE DELETE ON outbound_movements
    FOR EACH ROW EXECUTE FUNCTION prevent_outbound_movement_mutation();
"""

POINT_ORDER_SQL = """
CREATE OR REPLACE FUNCTION prevent_point_order_delete()
RETURNS TRIGGER AS $$
BEGIN
    IF OLD.status NOT IN ('PENDING', 'CANCELLED') THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: point_orders row % in status % cannot be deleted',
            OLD.id, OLD.status;
    END IF;
    RETURN OLD;
END;
$$ LANGUAGE plpgsql;

CREATE OR REPLACE FUNCTION guard_point_order_payment()
RETURNS TRIGGER AS $$
BEGIN
    IF NEW.paid_amount < OLD.paid_amount THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: point_orders row % paid_amount cannot decrease',
            OLD.id;
    END IF;
    IF OLD.payment_notes IS NOT NULL AND OLD.payment_notes <> ''
       AND (NEW.payment_notes IS NULL
            OR left(NEW.payment_notes, length(OLD.payment_notes)) <> OLD.payment_notes) THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: point_orders row % payment_notes are append-only',
            OLD.id;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_point_order_delete_guard ON point_orders;
CREATE TRIGGER trg_point_order_delete_guard
    BEFORE DELETE ON point_orders
    FOR EACH ROW EXECUTE FUNCTION prevent_point_order_delete();

DROP TRIGGER IF EXISTS trg_point_order_payment_guard ON point_orders;
CREATE TRIGGER trg_point_order_payment_guard
    BEFORE UPDATE ON point_orders
    FOR EACH ROW EXECUTE FUNCTION guard_point_order_payment();
"""

DROP_SQL = """
DROP TRIGGER IF EXISTS trg_outbound_movement_immutability_update ON outbound_movements;
DROP TRIGGER IF EXISTS trg_outbound_movement_immutability_delete ON outbound_movements;
DROP TRIGGER IF EXISTS trg_point_order_delete_guard ON point_orders;
DROP TRIGGER IF EXISTS trg_point_order_payment_guard ON point_orders;
DROP FUNCTION IF EXISTS prevent_outbound_movement_mutation();
DROP FUNCTION IF EXISTS prevent_point_order_delete();
DROP FUNCTION IF EXISTS guard_point_order_payment();
"""

TRIGGER_SQL = (OUTBOUND_MOVEMENT_SQL, POINT_ORDER_SQL)

ALL_TRIGGER_NAMES = [
    "trg_outbound_movement_immutability_update",
    "trg_outbound_movement_immutability_delete",
    "trg_point_order_delete_guard",
    "trg_point_order_payment_guard",
]


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables exist; engine is connected to PostgreSQL.
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Functions use CREATE OR REPLACE, so this is idempotent.
    """
    with engine.connect() as conn:
        for sql in TRIGGER_SQL:
            conn.execute(text(sql))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    Only for tests and for migrations that must rewrite history.
    """
    with engine.connect() as conn:
        conn.execute(text(DROP_SQL))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        result = conn.execute(text(check_sql))
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is present."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
