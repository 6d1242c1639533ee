# metrocal/auth_manager.py

import json
import os
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests
from jose import JWTError, jwt

from metrocal import config
from metrocal.errors import CollaboratorFailure, ValidationError


@dataclass(frozen=True)
class CurrentUser:
    display_name: Optional[str]
    email: Optional[str]


class AuthManager:
    """
    Client for the authentication provider.

    Holds the current session in memory (and in SESSION_FILE) and notifies
    subscribers whenever the logged-in user changes.
    """

    def __init__(self, server_url=None, session_file=None, secret_key=None, algorithm=None, http=None):
        self.server_url = (server_url or config.SERVER_URL).rstrip('/')
        self.session_file = session_file or config.SESSION_FILE
        self.secret_key = secret_key if secret_key is not None else config.SECRET_KEY
        self.algorithm = algorithm or config.ALGORITHM
        self.http = http or requests
        self._token: Optional[str] = None
        self._user: Optional[CurrentUser] = None
        self._subscribers: List[Callable[[Optional[CurrentUser]], None]] = []

    # --- Subscription ---

    def subscribe(self, callback: Callable[[Optional[CurrentUser]], None]) -> Callable[[], None]:
        """Registers a callback, calls it immediately and returns an unsubscribe function."""
        self._subscribers.append(callback)
        callback(self._user)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self._user)
            except Exception:
                logging.error("Auth subscriber raised an exception.", exc_info=True)

    # --- Session state ---

    @property
    def current_user(self) -> Optional[CurrentUser]:
        return self._user

    def is_logged_in(self) -> bool:
        return self._token is not None

    def get_auth_headers(self) -> dict:
        """Returns the authorization headers required for API calls."""
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    def _decode_token(self, token: str) -> CurrentUser:
        try:
            if self.secret_key:
                payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            else:
                logging.warning("SECRET_KEY not set: reading token claims without verification.")
                payload = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise CollaboratorFailure("O token de autenticação não é válido.") from e
        return CurrentUser(
            display_name=payload.get("name") or payload.get("full_name"),
            email=payload.get("email") or payload.get("sub"),
        )

    def _set_session(self, token: Optional[str], user: Optional[CurrentUser]):
        self._token = token
        self._user = user
        self._notify()

    def save_session_to_disk(self):
        with open(self.session_file, 'w', encoding='utf-8') as f:
            json.dump({"token": self._token}, f, indent=2)

    def load_session_from_disk(self) -> bool:
        """Loads a session from the session file if it exists and is valid."""
        if not os.path.exists(self.session_file):
            return False
        try:
            with open(self.session_file, 'r', encoding='utf-8') as f:
                token = json.load(f).get("token")
            if token:
                self._set_session(token, self._decode_token(token))
                return True
        except (json.JSONDecodeError, KeyError, CollaboratorFailure):
            logging.warning("Stored session is invalid, logging out.", exc_info=True)
            self.logout()
        return False

    # --- Provider operations ---

    def login(self, email: str, password: str) -> CurrentUser:
        if not email or not password:
            raise ValidationError("Informe e-mail e senha.")
        try:
            response = self.http.post(
                f"{self.server_url}/token",
                data={"username": email, "password": password},
                timeout=10,
            )
        except requests.RequestException as e:
            logging.error("Login request failed.", exc_info=True)
            raise CollaboratorFailure(f"Falha de conexão.\n{e}") from e

        if response.status_code in (401, 422):
            raise CollaboratorFailure("E-mail ou senha incorretos.")
        if response.status_code != 200:
            raise CollaboratorFailure(f"Erro inesperado do servidor: {response.status_code}")

        token = response.json()['access_token']
        user = self._decode_token(token)
        self._set_session(token, user)
        self.save_session_to_disk()
        logging.info(f"User {user.email} logged in.")
        return user

    def register(self, name: str, email: str, password: str) -> CurrentUser:
        if not name or not email or not password:
            raise ValidationError("Nome, e-mail e senha são obrigatórios.")
        try:
            response = self.http.post(
                f"{self.server_url}/users",
                json={"name": name, "email": email, "password": password},
                timeout=10,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logging.error("Registration request failed.", exc_info=True)
            raise CollaboratorFailure(f"Não foi possível concluir o cadastro.\n{e}") from e
        return self.login(email, password)

    def logout(self):
        """Logs out the user and deletes the session file."""
        if os.path.exists(self.session_file):
            os.remove(self.session_file)
        self._set_session(None, None)
        logging.info("User logged out.")
