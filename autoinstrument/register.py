"""
Preload entry point.

Importing this module installs the import hook before any application code
runs, so frameworks can be imported in any order afterwards::

    python -c "import autoinstrument.register; import runpy; runpy.run_path('app.py')"

or from ``sitecustomize.py``.  Options found in ``.env``, the environment or
the file named by ``AUTOINSTRUMENT_CONFIG`` are applied to the default
context; the host still calls ``autoinstrument.configure(sink)`` to activate
instrumentation.
"""

import os

from dotenv import load_dotenv

from .config import load_options, options_from_env
from .constants import ENV_CONFIG_PATH
from .controller import update_config
from .loader import install
from .observability import get_logger

logger = get_logger(__name__)

load_dotenv()
install()

_options = options_from_env()
_config_path = os.environ.get(ENV_CONFIG_PATH, "")
if _config_path:
    _options.update(load_options(_config_path))
if _options:
    update_config(**_options)

logger.info("Pre-loaded via register; call autoinstrument.configure(sink) to activate")
