from dishka import Provider as DishkaProvider

from searchsync.util.di.scope import Scope


class Provider(DishkaProvider):
    """Base for searchsync providers; unscoped factories default to UOW."""

    scope = Scope.UOW
