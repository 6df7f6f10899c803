import pytest

from tally.db import get_connection, init_db

GALICIA_STATEMENT = """\
Resumen de Cuenta Corriente en Pesos Página 1 / 1
N° 4049044-1 028-3
Fecha Descripción Débito Crédito Saldo
Saldo inicial $ 1.000,00
02/01/24 PAGO TARJETA VISA -250,00 750,00
03/01/24 TRANSFERENCIA RECIBIDA 5.000,00 5.750,00
Saldo final $ 5.750,00
"""


@pytest.fixture
def db(tmp_path):
    """Provide an initialized temp DB connection with the default bank rules."""
    db_path = tmp_path / "test.db"
    conn = get_connection(db_path)
    init_db(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path):
    """An initialized database file, for code that opens its own connections."""
    path = tmp_path / "service.db"
    conn = get_connection(path)
    init_db(conn)
    conn.close()
    return path


@pytest.fixture
def galicia_text():
    return GALICIA_STATEMENT
