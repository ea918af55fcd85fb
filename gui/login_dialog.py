"""
Sign-in dialog shown before the kiosk display.
"""

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QFormLayout, QLineEdit, QLabel, QDialogButtonBox,
)
from PySide6.QtCore import Qt

from engine.auth import AllowListGate, AuthError


class LoginDialog(QDialog):
    """Email/password prompt in front of the allow-list gate."""

    def __init__(self, gate: AllowListGate, parent=None):
        super().__init__(parent)
        self._gate = gate
        self.setWindowTitle("Photo Kiosk - Sign In")
        self.setMinimumWidth(360)

        layout = QVBoxLayout(self)
        form = QFormLayout()
        self._email_edit = QLineEdit()
        self._email_edit.setPlaceholderText("you@example.com")
        form.addRow("Email:", self._email_edit)
        self._password_edit = QLineEdit()
        self._password_edit.setEchoMode(QLineEdit.Password)
        form.addRow("Password:", self._password_edit)
        layout.addLayout(form)

        self._error_label = QLabel("")
        self._error_label.setStyleSheet("color: #c62828;")
        self._error_label.setAlignment(Qt.AlignCenter)
        layout.addWidget(self._error_label)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.button(QDialogButtonBox.Ok).setText("Sign In")
        buttons.accepted.connect(self._on_sign_in)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _on_sign_in(self):
        try:
            self._gate.sign_in(self._email_edit.text(), self._password_edit.text())
        except AuthError as e:
            self._error_label.setText(str(e))
            self._password_edit.clear()
            self._password_edit.setFocus()
            return
        self.accept()
