"""
Navigation operations (file maps, search, definitions/references, inspection).
"""

from codenav.navigation.resolver import NavigationResolver, create_navigator

__all__ = [
    'NavigationResolver',
    'create_navigator',
]
