# constants.py
import logging

logger = logging.getLogger(__name__)

# Run configuration defaults
MAX_ITERATIONS = 1000
WAIT_MS = 200
DEBUG_MODE = False

# Interaction
SAMPLE_VALUE = "test-value"
MIN_SELECT_SIZE = 5
TEXT_INPUT_TYPES = ("", "text", "email", "search")
PROGRESS_EVERY = 50

# Statistics categories
FORM_TAGS = frozenset({"input", "select", "textarea", "button"})
INTERACTIVE_TAGS = frozenset({"a", "button", "input", "select", "textarea", "summary"})

# Page loading (Playwright)
POST_LOAD_WAIT_MS = 2000
PAGE_TIMEOUT_MS = 60000
NETWORKIDLE_TIMEOUT_MS = 10000
MUTATION_BINDING = "__explorerMutations"

DEFAULT_OUTPUT = "dom.json"
LOG_FORMAT = '%(asctime)s %(levelname)-5s %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
