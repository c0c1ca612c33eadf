import warnings

# Ignore deprecation noise from the web stack
warnings.filterwarnings("ignore", category=DeprecationWarning, module="starlette.*")

# Import relay fixtures so they are available to all tests
from tests.fixtures.relay_fixtures import *  # noqa: E402, F403
