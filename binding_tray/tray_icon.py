from __future__ import annotations

from typing import Optional

from PyQt6.QtCore import QObject, QRectF, Qt
from PyQt6.QtGui import QAction, QColor, QFont, QIcon, QPainter, QPixmap
from PyQt6.QtWidgets import QMenu, QSystemTrayIcon

from binding_tray.menu_actions import TrayActions, build_menu_entries

APP_TITLE = "Dark Binding"
_ICON_SIZE = 64
_ICON_BACKGROUND = "#1e2328"
_ICON_ACCENT = "#c8aa6e"
_NOTICE_TIMEOUT_MS = 5000


def build_tray_pixmap(size: int = _ICON_SIZE) -> QPixmap:
    """Draw the tray glyph in code so no asset file has to ship with the package."""

    pixmap = QPixmap(size, size)
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    try:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setBrush(QColor(_ICON_BACKGROUND))
        painter.setPen(QColor(_ICON_ACCENT))
        inset = size * 0.06
        bounds = QRectF(inset, inset, size - 2 * inset, size - 2 * inset)
        painter.drawEllipse(bounds)
        font = QFont()
        font.setBold(True)
        font.setPixelSize(int(size * 0.42))
        painter.setFont(font)
        painter.drawText(bounds, int(Qt.AlignmentFlag.AlignCenter), "DB")
    finally:
        painter.end()
    return pixmap


class BindingTrayIcon(QSystemTrayIcon):
    def __init__(self, actions: TrayActions, parent: Optional[QObject] = None) -> None:
        super().__init__(QIcon(build_tray_pixmap()), parent)
        self._menu = QMenu()
        self._actions: list[QAction] = []
        for entry in build_menu_entries(actions):
            if entry.is_separator:
                self._menu.addSeparator()
                continue
            action = QAction(entry.label, self._menu)
            callback = entry.callback
            action.triggered.connect(lambda _checked=False, cb=callback: cb())
            self._menu.addAction(action)
            self._actions.append(action)
        self.setContextMenu(self._menu)
        self.setToolTip(APP_TITLE)
        actions.notify = self.show_notice

    def show_notice(self, message: str) -> None:
        self.showMessage(APP_TITLE, message, QSystemTrayIcon.MessageIcon.Warning, _NOTICE_TIMEOUT_MS)
