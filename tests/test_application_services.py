import contextlib
import unittest

from werkzeug.security import generate_password_hash

from marketplace.application.auth_service import AuthService, generate_display_name
from marketplace.domain.contracts import AuthLoginInput, AuthSignupInput
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.errors import ValidationError


class _FakeDb:
    def __init__(self) -> None:
        self.transactions = 0

    @contextlib.contextmanager
    def transaction(self):
        self.transactions += 1
        yield self


class _FakeAuthRepo:
    def __init__(self) -> None:
        self.created = []
        self._users = {}

    def find_user_by_email(self, _db, email: str):
        return self._users.get(email)

    def email_exists(self, _db, email: str) -> bool:
        return email in self._users

    def create_user(self, _db, *, email: str, password: str) -> int:
        user_id = len(self._users) + 1
        self.created.append(email)
        self._users[email] = {"id": user_id, "email": email, "password_hash": generate_password_hash(password)}
        return user_id


class _FakeProfiles:
    def __init__(self) -> None:
        self.rows = {}
        self.taken_names = set()

    def display_name_exists(self, _db, display_name: str) -> bool:
        return display_name in self.taken_names

    def create(self, _db, *, user_id: int, **fields) -> None:
        self.rows[user_id] = {"id": user_id, **fields}
        self.taken_names.add(fields["display_name"])

    def get_by_id(self, _db, user_id: int):
        return self.rows.get(user_id)


class ApplicationServicesTest(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = _FakeAuthRepo()
        self.profiles = _FakeProfiles()
        self.service = AuthService(repository=self.repo, profiles=self.profiles)
        self.db = _FakeDb()

    def test_signup_uses_repositories_in_one_transaction(self) -> None:
        profile = self.service.signup(
            self.db,
            AuthSignupInput(email=" Buyer@Example.com ", password="longenough", role="Client", company_name="  "),
        )
        self.assertEqual(self.repo.created, ["buyer@example.com"])
        self.assertEqual(self.db.transactions, 1)
        self.assertEqual(profile["role"], "client")
        self.assertEqual(profile["status"], "pending")
        self.assertIsNone(profile["company_name"])
        self.assertTrue(profile["display_name"].startswith("Client-"))

    def test_signup_refusals_write_nothing(self) -> None:
        self.service.signup(self.db, AuthSignupInput(email="taken@example.com", password="longenough", role="supplier"))
        with self.assertRaises(ValidationError) as ctx:
            self.service.signup(self.db, AuthSignupInput(email="taken@example.com", password="longenough", role="client"))
        self.assertEqual(ctx.exception.code, "email_already_registered")
        self.assertEqual(len(self.repo.created), 1)

    def test_login_checks_password_hash(self) -> None:
        self.service.signup(self.db, AuthSignupInput(email="vendor@example.com", password="vendorpass", role="supplier"))
        profile = self.service.login(self.db, AuthLoginInput(email="VENDOR@example.com", password="vendorpass"))
        self.assertEqual(profile["email"], "vendor@example.com")

        with self.assertRaises(AppPermissionError) as ctx:
            self.service.login(self.db, AuthLoginInput(email="vendor@example.com", password="nope-nope"))
        self.assertEqual(ctx.exception.http_status, 401)

    def test_display_names_are_unique_aliases(self) -> None:
        name = generate_display_name("supplier")
        self.assertRegex(name, r"^Supplier-[0-9A-F]{4}$")
        self.assertTrue(generate_display_name("unknown").startswith("User-"))


if __name__ == "__main__":
    unittest.main()
