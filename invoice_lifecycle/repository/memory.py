"""
In-memory invoice repository, used for tests and local seeding.
"""

from collections import OrderedDict
from typing import List, Optional

from invoice_lifecycle.models import Invoice, Project, RateCard, User
from .base import InvoiceRepository


class InMemoryInvoiceRepository(InvoiceRepository):
    """Keeps invoices, projects, rate cards and users in process memory."""

    def __init__(self, invoices=(), projects=(), rate_cards=(), users=(), **kwargs):
        super().__init__(**kwargs)
        self._invoices: "OrderedDict[str, Invoice]" = OrderedDict()
        self._projects: "OrderedDict[str, Project]" = OrderedDict()
        self._rate_cards: "OrderedDict[str, RateCard]" = OrderedDict()
        self._users: "OrderedDict[str, User]" = OrderedDict()

        self.add_invoices(invoices)
        for project in projects:
            self.add_project(project)
        for rate_card in rate_cards:
            self.add_rate_card(rate_card)
        for user in users:
            self.add_user(user)

    def _read_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    def _read_all_invoices(self) -> List[Invoice]:
        return list(self._invoices.values())

    def _write_invoice(self, invoice: Invoice):
        self._invoices[invoice.id] = invoice

    def _read_projects(self) -> List[Project]:
        return list(self._projects.values())

    def _write_project(self, project: Project):
        self._projects[project.id] = project

    def _read_rate_cards(self) -> List[RateCard]:
        return list(self._rate_cards.values())

    def _write_rate_card(self, rate_card: RateCard):
        self._rate_cards[rate_card.id] = rate_card

    def _read_users(self) -> List[User]:
        return list(self._users.values())

    def _write_user(self, user: User):
        self._users[user.id] = user
