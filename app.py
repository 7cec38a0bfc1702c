import logging
import sys
from pathlib import Path

from PySide6.QtGui import QIcon
from PySide6.QtWidgets import QApplication

from core.config import load_config
from core.logging_setup import setup_logging
from ui.main_window import MainWindow

logger = logging.getLogger(__name__)


def _asset_path(*parts: str) -> Path:
    # PyInstaller onefile extracts bundled files under sys._MEIPASS.
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS")) / Path(*parts)
    return Path(__file__).resolve().parent / Path(*parts)


def main() -> int:
    setup_logging()
    config = load_config()
    logger.info("Starting ColorSplash with storage dir %s", config["storage"]["dir"])

    app = QApplication(sys.argv)
    app.setApplicationName("ColorSplash")
    app.setOrganizationName("ColorSplash")

    logo_path = _asset_path("assets", "Logo.png")
    if logo_path.exists():
        app.setWindowIcon(QIcon(str(logo_path)))

    w = MainWindow(config, logo_path=logo_path)
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
