"""
JSON file invoice repository.

Stores all records in one JSON document on disk. Every write serializes the
whole document to a temporary file in the same directory and moves it into
place with os.replace(), so readers never observe a partial file. The
in-memory cache is updated only after the replace succeeds.
"""

import json
import os
import shutil
import tempfile
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from invoice_lifecycle.models import Invoice, Project, RateCard, User, PersistenceError, ValidationError
from .base import InvoiceRepository

import logging
logger = logging.getLogger(__name__)


class JsonFileInvoiceRepository(InvoiceRepository):
    """
    Invoice repository backed by a single JSON file.

    Document layout:
        {"invoices": {id: invoice}, "projects": {id: project},
         "rateCards": {id: rate card}, "users": {id: user}}
    """

    def __init__(self, path: Union[str, Path], backup_before_write: bool = False, **kwargs):
        """
        Initialize the repository, loading the file if it exists.

        Args:
            path: JSON document path; parent directories are created
            backup_before_write: Copy the current file into backups/ before every write

        Raises:
            PersistenceError: If an existing file cannot be read or parsed
        """
        super().__init__(**kwargs)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.backup_dir = self.path.parent / 'backups'
        self.backup_before_write = backup_before_write

        self._invoices: "OrderedDict[str, Invoice]" = OrderedDict()
        self._projects: "OrderedDict[str, Project]" = OrderedDict()
        self._rate_cards: "OrderedDict[str, RateCard]" = OrderedDict()
        self._users: "OrderedDict[str, User]" = OrderedDict()
        self._load()

        self.logger.info(f"JSON repository initialized at {self.path} "
                         f"({len(self._invoices)} invoices)")

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = json.load(f)
            invoices = [Invoice.from_dict(data) for data in document.get('invoices', {}).values()]
            projects = [Project.from_dict(data) for data in document.get('projects', {}).values()]
            rate_cards = [RateCard.from_dict(data) for data in document.get('rateCards', {}).values()]
            users = [User.from_dict(data) for data in document.get('users', {}).values()]
        except (OSError, ValueError, KeyError, ValidationError) as e:
            self.logger.error(f"Failed to load repository file {self.path}: {e}")
            raise PersistenceError(f"Could not load {self.path}: {e}") from e

        self._invoices.update((invoice.id, invoice) for invoice in invoices)
        self._projects.update((project.id, project) for project in projects)
        self._rate_cards.update((card.id, card) for card in rate_cards)
        self._users.update((user.id, user) for user in users)

    def _document(self, invoices=None, projects=None, rate_cards=None, users=None) -> Dict[str, Any]:
        invoices = self._invoices if invoices is None else invoices
        projects = self._projects if projects is None else projects
        rate_cards = self._rate_cards if rate_cards is None else rate_cards
        users = self._users if users is None else users
        return {
            'invoices': {key: invoice.to_dict() for key, invoice in invoices.items()},
            'projects': {key: project.to_dict() for key, project in projects.items()},
            'rateCards': {key: card.to_dict() for key, card in rate_cards.items()},
            'users': {key: user.to_dict() for key, user in users.items()}
        }

    def _persist(self, document: Dict[str, Any]):
        if self.backup_before_write and self.path.exists():
            self.create_backup()

        fd, temp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def create_backup(self, backup_name: Optional[str] = None) -> str:
        """
        Copy the current document into the backup directory.

        Returns:
            Path to the backup file

        Raises:
            PersistenceError: If there is nothing to back up or the copy fails
        """
        if not self.path.exists():
            raise PersistenceError(f"No repository file to back up at {self.path}")
        if backup_name is None:
            backup_name = f"backup_{time.time_ns()}"
        try:
            self.backup_dir.mkdir(exist_ok=True)
            backup_file = self.backup_dir / f"{backup_name}.json"
            shutil.copy2(self.path, backup_file)
        except OSError as e:
            self.logger.error(f"Failed to create backup: {e}")
            raise PersistenceError(f"Backup creation failed: {e}") from e

        self.logger.info(f"Created backup: {backup_file}")
        return str(backup_file)

    def _read_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    def _read_all_invoices(self) -> List[Invoice]:
        return list(self._invoices.values())

    def _write_invoice(self, invoice: Invoice):
        invoices = OrderedDict(self._invoices)
        invoices[invoice.id] = invoice
        self._persist(self._document(invoices=invoices))
        self._invoices = invoices

    def _read_projects(self) -> List[Project]:
        return list(self._projects.values())

    def _write_project(self, project: Project):
        projects = OrderedDict(self._projects)
        projects[project.id] = project
        self._persist(self._document(projects=projects))
        self._projects = projects

    def _read_rate_cards(self) -> List[RateCard]:
        return list(self._rate_cards.values())

    def _write_rate_card(self, rate_card: RateCard):
        rate_cards = OrderedDict(self._rate_cards)
        rate_cards[rate_card.id] = rate_card
        self._persist(self._document(rate_cards=rate_cards))
        self._rate_cards = rate_cards

    def _read_users(self) -> List[User]:
        return list(self._users.values())

    def _write_user(self, user: User):
        users = OrderedDict(self._users)
        users[user.id] = user
        self._persist(self._document(users=users))
        self._users = users
