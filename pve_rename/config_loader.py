#!/usr/bin/env python3
import os

import yaml
from cerberus import Validator

DEFAULT_YAML_VALIDATION_FILE = os.path.join(
    os.path.dirname(os.path.abspath(__file__)),
    "config",
    "rename_config_validation.yaml",
)
# -----------------------------------------------------------------------------
#
# Yaml decoder override to disallow duplicate keys
#


class LoaderNoDuplicates(yaml.SafeLoader):
    def construct_mapping(self, node, deep=False):
        seen_keys = set()
        mapping = {}

        for key_node, value_node in node.value:
            key = self.construct_object(key_node)
            if key in seen_keys:
                raise yaml.YAMLError(f"Duplicate key found: {key}")
            seen_keys.add(key)
            value = self.construct_object(value_node, deep)
            mapping[key] = value

        return mapping


# -----------------------------------------------------------------------------


def check_file(file_path):
    """Return a list of access problems for a local YAML file."""
    errors = []
    if not os.path.isfile(file_path):
        errors.append(f"Error checking file exists {file_path}")
        return errors
    if not os.access(file_path, os.R_OK):
        errors.append(f"Error reading file {file_path}")
    if not file_path.endswith(('.yaml', '.yml')):
        errors.append(f"File {file_path} is not a YAML file")
    return errors


def load_yaml_text(text):
    """Parse YAML text, an empty document becomes an empty dict."""
    data = yaml.load(text, Loader=LoaderNoDuplicates)
    return {} if data is None else data


def load_yaml_file(yaml_file):
    with open(yaml_file, "r") as fh:
        return load_yaml_text(fh.read())


def validate_config(config, validation_rules):
    """Validate and normalize config against cerberus rules.

    Returns (True, document) with defaults filled in, or
    (False, ["field: error", ...]).
    """
    validator = Validator(validation_rules)
    if not validator.validate(config):
        errors = []
        for field, field_errors in validator.errors.items():
            for error in field_errors:
                errors.append(f"{field}: {error}")
        return False, errors
    return True, validator.document
