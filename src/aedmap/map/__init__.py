"""Map presentation."""

from .site_map import SiteMap, build_map, popup_html

__all__ = ["SiteMap", "build_map", "popup_html"]
