"""In-memory stand-ins for the parts of the Playwright sync API the runtime uses."""

import time

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError


class FakeLocator:
    def __init__(self, name="", visible=True, on_click=None, fill_error=None):
        self.name = name
        self.visible = visible
        self.on_click = on_click
        self.fill_error = fill_error
        self.fills = []
        self.clicks = 0

    @property
    def first(self):
        return self

    def is_shown(self):
        return self.visible() if callable(self.visible) else self.visible

    def wait_for(self, state="visible", timeout=None):
        if not self.is_shown():
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    def fill(self, value):
        if self.fill_error is not None:
            raise self.fill_error
        self.fills.append(value)

    def click(self):
        self.clicks += 1
        if self.on_click:
            self.on_click()


def missing():
    return FakeLocator("missing", visible=False)


class _Cells:
    def __init__(self, cells):
        self.cells = cells

    def all_text_contents(self):
        return list(self.cells)


class _Row:
    def __init__(self, cells):
        self.cells = cells

    def locator(self, _selector):
        return _Cells(self.cells)


class _Rows:
    def __init__(self, rows):
        self.rows = rows

    def count(self):
        return len(self.rows)

    def nth(self, i):
        return _Row(self.rows[i])


class FakeFrame:
    """
    A frame with controls keyed the way the resolver looks them up.

    ``labels`` maps label text to a locator, ``css`` maps selector strings,
    ``buttons`` maps accessible button names, ``texts`` is the visible text
    of the frame and ``rows`` the cells of the result table body.
    """

    ROW_SELECTOR = "table tbody tr"

    def __init__(self, url="about:blank", labels=None, css=None, buttons=None,
                 texts=None, rows=None, inputs=None):
        self.url = url
        self.labels = labels or {}
        self.css = css or {}
        self.buttons = buttons or {}
        self.texts = texts if texts is not None else []
        self.rows = rows if rows is not None else []
        self.inputs = inputs or []
        self.lookups = []

    def get_by_label(self, pattern):
        self.lookups.append(("label", pattern.pattern))
        for text, loc in self.labels.items():
            if pattern.search(text):
                return loc
        return missing()

    def get_by_role(self, role, name=None):
        self.lookups.append(("role", role))
        for text, loc in self.buttons.items():
            if name.search(text):
                return loc
        return missing()

    def get_by_text(self, pattern):
        return FakeLocator(visible=lambda: any(pattern.search(t) for t in self.texts))

    def locator(self, selector, has_text=None):
        self.lookups.append(("css", selector))
        if selector == self.ROW_SELECTOR:
            return _Rows(self.rows)
        if has_text is not None:
            for text, loc in self.buttons.items():
                if has_text in text:
                    return loc
            return missing()
        return self.css.get(selector, missing())

    def evaluate(self, _js):
        return list(self.inputs)


class FakePage:
    def __init__(self, frames, goto_error=None):
        self.frames = frames
        self.goto_error = goto_error
        self.visited = []

    def goto(self, url, timeout=None, wait_until=None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error

    def wait_for_load_state(self, state="load", timeout=None):
        return None

    def wait_for_timeout(self, ms):
        time.sleep(ms / 1000)


ROWS = [
    ["001", "Ana", "Lopez", "Ruiz", "F", "UNAM", "Medicina", "CDMX", "2010-05"],
    ["002", "Beto", "Diaz", "Cruz", "M", "IPN", "Derecho", "JAL", "2012"],
]


class Portal:
    """
    A fake portal: main document plus one iframe hosting the form.

    Clicking "Buscar" makes ``results`` appear as table rows, or shows the
    no-results message when ``results`` is empty. With ``answer=False`` the
    click does nothing, as when the portal never responds.
    """

    def __init__(self, results=None, answer=True, with_button=True):
        self.results = ROWS if results is None else results
        self.nombre = FakeLocator("nombre")
        self.paterno = FakeLocator("paterno")
        self.materno = FakeLocator("materno")
        self.curp = FakeLocator("curp")
        self.button = FakeLocator("buscar", on_click=self._answer if answer else None)
        self.main = FakeFrame("https://portal.example/")
        self.form = FakeFrame(
            "https://portal.example/form",
            labels={
                "Nombre(s)": self.nombre,
                "Primer Apellido": self.paterno,
                "Segundo Apellido": self.materno,
            },
            css={"input#curp": self.curp},
            buttons={"Buscar": self.button} if with_button else {},
            inputs=[{"tag": "input", "id": "curp", "fcn": "curp", "ph": ""}],
        )
        self.page = FakePage([self.main, self.form])

    def _answer(self):
        if self.results:
            self.form.rows.extend(self.results)
        else:
            self.form.texts.append("Sin resultados para la búsqueda")


class SlowFrame(FakeFrame):
    """A frame whose label lookups each take ``delay`` seconds to miss."""

    def __init__(self, delay, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    def get_by_label(self, pattern):
        time.sleep(self.delay)
        return super().get_by_label(pattern)
