from typing import Annotated

from fastapi import Depends, Request

from src.config import Settings, get_settings
from src.services.upstream import ReportRefresher


def get_refresher(request: Request) -> ReportRefresher:
    return request.app.state.refresher


# Type aliases for cleaner dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
Refresher = Annotated[ReportRefresher, Depends(get_refresher)]
