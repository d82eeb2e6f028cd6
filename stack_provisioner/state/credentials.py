#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""The credential set of a deployment."""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, computed_field, field_validator, model_validator

from stack_provisioner.config.literals import (
    MIN_SECRET_LENGTH,
    SECRET_KEYS,
    SECRET_LENGTH,
    SESSION_SECRET_LENGTH,
    CredentialKeys,
)
from stack_provisioner.exceptions import InvalidCredentialsError
from stack_provisioner.utils.helpers import generate_secret, is_safe_secret


class CredentialSet(BaseModel):
    """Randomly generated secrets of one deployment."""

    model_config = ConfigDict(frozen=True)

    mysql_root_password: str
    mysql_user: str = "newapi"
    mysql_password: str
    redis_password: str
    session_secret: str

    @field_validator("mysql_root_password", "mysql_password", "redis_password", "session_secret")
    @classmethod
    def secret_policy(cls, value: str) -> str:
        """Secrets are alphanumeric and long enough."""
        if not is_safe_secret(value, MIN_SECRET_LENGTH):
            raise ValueError(
                f"secrets must be at least {MIN_SECRET_LENGTH} letters or digits"
            )
        return value

    @model_validator(mode="after")
    def distinct_secrets(self) -> "CredentialSet":
        """No two secrets of a deployment are equal."""
        values = list(self.secrets.values())
        if len(set(values)) != len(values):
            raise ValueError("secrets of a credential set must be distinct")
        return self

    @computed_field  # type: ignore[misc]
    @property
    def monitor_password(self) -> str:
        """Password of the monitoring database user."""
        return f"monitor_{self.mysql_password[:16]}"

    @property
    def secrets(self) -> dict[str, str]:
        """The generated secrets, by environment key."""
        return {
            CredentialKeys.MYSQL_ROOT_PASSWORD.value: self.mysql_root_password,
            CredentialKeys.MYSQL_PASSWORD.value: self.mysql_password,
            CredentialKeys.REDIS_PASSWORD.value: self.redis_password,
            CredentialKeys.SESSION_SECRET.value: self.session_secret,
        }

    def as_env(self) -> dict[str, str]:
        """The credential entries of the environment file, in file order."""
        return {
            CredentialKeys.MYSQL_ROOT_PASSWORD.value: self.mysql_root_password,
            CredentialKeys.MYSQL_USER.value: self.mysql_user,
            CredentialKeys.MYSQL_PASSWORD.value: self.mysql_password,
            CredentialKeys.REDIS_PASSWORD.value: self.redis_password,
            CredentialKeys.SESSION_SECRET.value: self.session_secret,
        }

    @classmethod
    def generate(cls, mysql_user: str = "newapi") -> "CredentialSet":
        """Generates a new credential set.

        Raises:
            SecretGenerationError if the entropy source is unavailable.
        """
        while True:
            candidate = {
                "mysql_root_password": generate_secret(SECRET_LENGTH),
                "mysql_password": generate_secret(SECRET_LENGTH),
                "redis_password": generate_secret(SECRET_LENGTH),
                "session_secret": generate_secret(SESSION_SECRET_LENGTH),
            }
            if len(set(candidate.values())) == len(candidate):
                return cls(mysql_user=mysql_user, **candidate)

    @classmethod
    def from_env(cls, values: Mapping[str, str | None]) -> "CredentialSet":
        """Loads a credential set from parsed environment file entries.

        Raises:
            InvalidCredentialsError if an entry is missing or violates the policy.
        """
        missing = [key.value for key in [*SECRET_KEYS, CredentialKeys.MYSQL_USER] if not values.get(key.value)]
        if missing:
            raise InvalidCredentialsError(f"missing entries: {', '.join(missing)}")
        try:
            return cls(
                mysql_root_password=values[CredentialKeys.MYSQL_ROOT_PASSWORD.value],
                mysql_user=values[CredentialKeys.MYSQL_USER.value],
                mysql_password=values[CredentialKeys.MYSQL_PASSWORD.value],
                redis_password=values[CredentialKeys.REDIS_PASSWORD.value],
                session_secret=values[CredentialKeys.SESSION_SECRET.value],
            )
        except ValidationError as e:
            raise InvalidCredentialsError(str(e)) from e
