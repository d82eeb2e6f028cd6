#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Some helpers functions that doesn't belong anywhere else."""

import secrets
import socket
import string

from stack_provisioner.config.literals import LOCALHOST, SECRET_LENGTH
from stack_provisioner.exceptions import SecretGenerationError

SECRET_ALPHABET = string.ascii_letters + string.digits


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Creates randomized string for use as credentials.

    The alphabet is restricted to letters and digits so that the value can be
    embedded unquoted in shell, ini-style and SQL literal contexts.

    Returns:
        String of `length` randomized letter+digit characters
    """
    try:
        return "".join([secrets.choice(SECRET_ALPHABET) for _ in range(length)])
    except (NotImplementedError, OSError) as e:
        raise SecretGenerationError(f"no entropy source available: {e}") from e


def is_safe_secret(value: str, min_length: int) -> bool:
    """Checks a value against the secret policy."""
    return len(value) >= min_length and all(char in SECRET_ALPHABET for char in value)


def primary_address() -> str:
    """The address of the interface holding the default route."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # No packet is sent, connecting a UDP socket only selects a route.
            sock.connect(("192.0.2.1", 9))
            return sock.getsockname()[0]
        except OSError:
            return LOCALHOST
