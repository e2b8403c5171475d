"""
Keystone application entry point.

Applications build a kernel, register their plugins and serve it:

    kernel = create_kernel([BlogPlugin(), UsersPlugin()])
    kernel.start_http_server()
"""

from typing import Iterable, Optional

from keystone.config import Settings, get_settings
from keystone.kernel.app import Kernel
from keystone.logging_config import configure_logging, get_logger
from keystone.plugins import Plugin

logger = get_logger(__name__)


def create_kernel(
    plugins: Iterable[Plugin] = (),
    settings: Optional[Settings] = None,
) -> Kernel:
    """Configure logging, build a kernel and register plugins in order."""
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    kernel = Kernel(settings)
    for plugin in plugins:
        kernel.register_plugin(plugin)

    logger.info(
        "Kernel created",
        extra={"project": settings.project_name, "version": settings.version},
    )
    return kernel


def main() -> None:
    """Serve a kernel without plugins (health endpoints only)."""
    create_kernel().start_http_server()


if __name__ == "__main__":
    main()
