import pytest
from fakes import FakeFrame, FakePage, Portal
from fastapi.testclient import TestClient
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from cedulascraper.cedulasmodels import BrowserBusy
from cedulascraper.web.cedulas_api import create_app


class StubProvider:
    """Runs jobs synchronously against a prepared fake page."""

    def __init__(self, page) -> None:
        self.page = page
        self.jobs = 0
        self.shutdowns = 0

    def run(self, job):
        self.jobs += 1
        return job(self.page)

    def shutdown(self) -> None:
        self.shutdowns += 1


@pytest.fixture
def client_for(fast_cfg):
    def make(page):
        provider = StubProvider(page)
        return TestClient(create_app(fast_cfg, provider)), provider

    return make


def test_root_and_ping(client_for):
    client, _ = client_for(Portal().page)
    assert client.get("/").json() == {"ok": True, "msg": "cedulas-api up"}
    ping = client.get("/diag/ping").json()
    assert ping["ok"] is True
    assert isinstance(ping["pid"], int)


def test_consulta_returns_matches_and_summary(client_for):
    client, provider = client_for(Portal().page)

    resp = client.post("/consulta-cedula", json={"nombre": "Ana", "paterno": "Lopez"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["query"] == {"nombre": "Ana", "paterno": "Lopez", "materno": "", "curp": ""}
    assert body["coincidencias"] == 2
    assert body["resumen"]["ultimoAnno"] == 2012
    assert body["resumen"]["universidades"] == ["UNAM", "IPN"]
    assert body["resultados"][1]["cedula"] == "002"
    assert body["camposNoLocalizados"] == []
    assert provider.jobs == 1


def test_consulta_zero_matches_is_ok(client_for):
    client, _ = client_for(Portal(results=[]).page)

    body = client.post("/consulta-cedula", json={"curp": "XEXX010101HNEXXXA4"}).json()

    assert body["ok"] is True
    assert body["coincidencias"] == 0
    assert body["resultados"] == []
    assert "resumen" not in body


@pytest.mark.parametrize("payload", [{}, {"paterno": "Lopez"}, {"nombre": "   "}])
def test_consulta_rejects_queries_without_nombre_or_curp(client_for, payload):
    client, provider = client_for(Portal().page)

    resp = client.post("/consulta-cedula", json=payload)

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert provider.jobs == 0


def test_consulta_timeout_is_structured_failure(client_for):
    client, _ = client_for(Portal(answer=False).page)

    resp = client.post("/consulta-cedula", json={"nombre": "Ana"})

    assert resp.status_code == 502
    body = resp.json()
    assert body["ok"] is False
    assert body["kind"] == "RowWaitTimeout"
    assert body["retryable"] is True


def test_inspect_campos(client_for):
    client, _ = client_for(Portal().page)
    body = client.get("/inspect-campos").json()
    assert body["ok"] is True
    assert body["frames"][1]["inputs"][0]["id"] == "curp"


def test_inspect_campos_readiness_failure(client_for):
    client, _ = client_for(FakePage([FakeFrame()]))
    resp = client.get("/inspect-campos")
    assert resp.status_code == 502
    assert resp.json()["kind"] == "ReadinessTimeout"


def test_provider_shut_down_with_app(fast_cfg):
    provider = StubProvider(Portal().page)
    with TestClient(create_app(fast_cfg, provider)) as client:
        client.get("/")
    assert provider.shutdowns == 1


def test_browser_error_during_fill_is_structured_failure(client_for):
    portal = Portal()
    portal.nombre.fill_error = PlaywrightTimeoutError("Timeout 90000ms exceeded.")
    client, _ = client_for(portal.page)

    resp = client.post("/consulta-cedula", json={"nombre": "Ana"})

    assert resp.status_code == 502
    body = resp.json()
    assert body["ok"] is False
    assert body["kind"] == "PageError"
    assert "90000ms" in body["error"]


class RaisingProvider(StubProvider):
    def __init__(self, exc) -> None:
        super().__init__(page=None)
        self.exc = exc

    def run(self, job):
        self.jobs += 1
        raise self.exc


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (BrowserBusy("El navegador no atendió la consulta en 50 ms."), "BrowserBusy"),
        (PlaywrightError("Target page, context or browser has been closed"), "PageError"),
    ],
)
def test_provider_failures_are_structured(fast_cfg, exc, kind):
    client = TestClient(create_app(fast_cfg, RaisingProvider(exc)))

    for resp in (
        client.post("/consulta-cedula", json={"nombre": "Ana"}),
        client.get("/inspect-campos"),
    ):
        assert resp.status_code == 502
        assert resp.json()["kind"] == kind
        assert resp.json()["retryable"] is True
