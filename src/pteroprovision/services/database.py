"""MariaDB provisioning and lookup services for pteroprovision."""

from typing import List, Optional

from pteroprovision.constants import DB_HOST
from pteroprovision.errors import ProvisionError
from pteroprovision.services.validation import ValidationService


def sql_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class DatabaseService:
    """Creates the panel database idempotently and answers existence queries.

    All statements go through the ``mysql`` client as root over the unix
    socket; SQL is written to stdin so credentials never appear on argv.
    """

    MYSQL_CMD = ["mysql", "-u", "root", "--batch", "--skip-column-names"]

    def __init__(self, logger, console, db_name: str, db_user: str, db_host: str = DB_HOST):
        self.logger = logger
        self.console = console
        self.db_name = ValidationService.ensure_identifier(db_name, "Database name")
        self.db_user = ValidationService.ensure_identifier(db_user, "Database user")
        self.db_host = db_host

    def build_provision_sql(self, db_password: str, db_root_password: Optional[str] = None) -> str:
        account = f"{sql_literal(self.db_user)}@{sql_literal(self.db_host)}"
        statements = [
            f"CREATE DATABASE IF NOT EXISTS `{self.db_name}` "
            "DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;",
            f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {sql_literal(db_password)};",
            # an existing account gets this run's password so the panel .env matches
            f"ALTER USER {account} IDENTIFIED BY {sql_literal(db_password)};",
            f"GRANT ALL PRIVILEGES ON `{self.db_name}`.* TO {account} WITH GRANT OPTION;",
        ]
        if db_root_password:
            statements.append(
                "ALTER USER 'root'@'localhost' IDENTIFIED VIA unix_socket "
                f"OR mysql_native_password USING PASSWORD({sql_literal(db_root_password)});"
            )
        statements.append("FLUSH PRIVILEGES;")
        return "\n".join(statements) + "\n"

    def provision(self, secrets, run_cmd):
        self.console.print("[blue]Configuring MariaDB database and user...[/blue]")
        run_cmd(["systemctl", "enable", "--now", "mariadb"])

        sql = self.build_provision_sql(secrets.db_password, secrets.db_root_password)
        run_cmd(
            list(self.MYSQL_CMD),
            input_text=sql,
            sensitive=[secrets.db_password, secrets.db_root_password],
        )
        self.console.print(
            f"[green]Database ready: {self.db_name}, user: {self.db_user}@{self.db_host}[/green]"
        )

    def query(self, sql: str, run_cmd) -> List[List[str]]:
        result = run_cmd(
            self.MYSQL_CMD + [f"--database={self.db_name}"],
            input_text=sql,
            capture_output=True,
        )
        rows = []
        for line in (result.stdout or "").splitlines():
            if line.strip():
                rows.append(line.split("\t"))
        return rows

    def scalar(self, sql: str, run_cmd) -> Optional[str]:
        rows = self.query(sql, run_cmd)
        if not rows:
            return None
        return rows[0][0]

    def admin_exists(self, email: str, username: str, run_cmd) -> bool:
        count = self.scalar(
            "SELECT COUNT(*) FROM users "
            f"WHERE email = {sql_literal(email)} OR username = {sql_literal(username)};",
            run_cmd,
        )
        try:
            return int(count or 0) > 0
        except ValueError as exc:
            raise ProvisionError(f"Unexpected answer from users lookup: {count!r}") from exc

    def location_id(self, short_code: str, run_cmd) -> Optional[int]:
        value = self.scalar(
            f"SELECT id FROM locations WHERE short = {sql_literal(short_code)} LIMIT 1;",
            run_cmd,
        )
        return int(value) if value else None

    def node_id(self, fqdn: str, run_cmd) -> Optional[int]:
        value = self.scalar(
            f"SELECT id FROM nodes WHERE fqdn = {sql_literal(fqdn)} ORDER BY id LIMIT 1;",
            run_cmd,
        )
        return int(value) if value else None
