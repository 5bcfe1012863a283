"""Interactive DOM explorer: capture every element, trigger every control."""
from .explorer import DomExplorer, explore
from .live import LivePage, open_page
from .loader import load_document, parse_fragment, parse_html
from .models import CapturedElement, ErrorRecord, ExplorationReport, ExplorerConfig

__version__ = "0.1.0"
