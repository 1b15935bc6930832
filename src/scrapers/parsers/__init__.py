# Import extractor strategies to trigger registration via @register_extractor.
# Note: The registry also auto-discovers modules via pkgutil.iter_modules.
from src.scrapers.parsers import pattern  # noqa: F401
from src.scrapers.parsers import tree  # noqa: F401
