from .cedulasconfig import (
    ButtonSpec as ButtonSpec,
)
from .cedulasconfig import (
    Config as Config,
)
from .cedulasconfig import (
    ControlSpec as ControlSpec,
)
from .cedulasconfig import (
    TimeoutConfig as TimeoutConfig,
)
from .cedulasconfig import (
    BrowserConfig as BrowserConfig,
)
from .cedulasconfig import (
    apply_env as apply_env,
)
from .cedulasconfig import (
    coerce_nested as coerce_nested,
)
from .cedulasconfig import (
    coerce_value as coerce_value,
)
from .cedulasconfig import (
    load_config as load_config,
)
from .cedulasframes import (
    FrameSet as FrameSet,
)
from .cedulasframes import (
    poll_until as poll_until,
)
from .cedulasframes import (
    poll_until_or_fail as poll_until_or_fail,
)
from .cedulasframes import (
    race_until as race_until,
)
from .cedulasmodels import (
    Candidate as Candidate,
)
from .cedulasmodels import (
    BrowserBusy as BrowserBusy,
)
from .cedulasmodels import (
    BrowserUnavailable as BrowserUnavailable,
)
from .cedulasmodels import (
    CedulaScraperError as CedulaScraperError,
)
from .cedulasmodels import (
    FieldNotResolved as FieldNotResolved,
)
from .cedulasmodels import (
    NavigationFailed as NavigationFailed,
)
from .cedulasmodels import (
    PageError as PageError,
)
from .cedulasmodels import (
    Query as Query,
)
from .cedulasmodels import (
    QueryError as QueryError,
)
from .cedulasmodels import (
    ReadinessTimeout as ReadinessTimeout,
)
from .cedulasmodels import (
    ResultSet as ResultSet,
)
from .cedulasmodels import (
    RowWaitTimeout as RowWaitTimeout,
)
from .cedulasmodels import (
    SubmitControlNotFound as SubmitControlNotFound,
)
from .cedulascraper import (
    ControlResolver as ControlResolver,
)
from .cedulascraper import (
    FormSession as FormSession,
)
from .cedulascraper import (
    ResultExtractor as ResultExtractor,
)
from .cedulascraper import (
    SessionState as SessionState,
)
from .cedulasession import (
    PageProvider as PageProvider,
)
