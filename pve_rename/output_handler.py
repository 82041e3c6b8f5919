#!/usr/bin/env python3

import os
import sys
import time
from datetime import datetime


class OutputHandler:
    def __init__(self, logfile=None, enable_colors=True):
        self.logfile = logfile
        self.enable_colors = enable_colors
        self.counts = {"s": 0, "i": 0, "w": 0, "e": 0}

    def set_logfile(self, logfile):
        self.logfile = logfile

    def _log(self, log_path, line):
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        with open(log_path, 'a') as log_file:
            log_file.write(f"{timestamp} {line}\n")

    def _color(self, code):
        return f'\033[{code}m' if self.enable_colors else ''

    def output(self,
               message=None,
               type=None,
               logfile=None,
               exit_on_error=False
               ):
        color_map = {
            's': ('[✓] ', '32'),  # Green
            'i': ('[i] ', '34'),  # Blue
            'w': ('[*] ', '33'),  # Yellow
            'e': ('[x] ', '31'),  # Red
            'h': ('', '0')        # Heading
        }

        level = type.lower() if type else None
        pre_message, color_code = color_map.get(
            level,
            ('[?] ', '0')) if level else ('', '0')
        color = self._color(color_code)
        reset = self._color('0')

        if level in self.counts:
            self.counts[level] += 1

        if level == 'h':
            if message:
                message = message.upper()
                if len(message) < 78:
                    blanks = 78 - len(message)
                    left_padding = blanks // 2
                    right_padding = blanks - left_padding
                    message = (
                        f"-{' ' * left_padding}{message}{' ' * right_padding}-"
                    )
                else:
                    message = message[:78]
            else:
                message = "-" * 80

        if not message:
            message = "-" * 80

        log_path = logfile if logfile else self.logfile
        if log_path:
            self._log(log_path, f"{pre_message}{message}")

        print(f"{color}{pre_message}{message}{reset}")

        if level == "e" and exit_on_error:
            print("-" * 80)
            sys.exit(1)

    def heading(self, title):
        self.output()
        self.output(title, type="h")
        self.output()

    def report(self, steps):
        """Print a list of (ok, message, level) step results."""
        for ok, message, level in steps:
            self.output(message, level)

    def summary(self):
        return (
            f"{self.counts['s']} succeeded, "
            f"{self.counts['w']} warnings, "
            f"{self.counts['e']} errors"
        )

    def ask(self, question, assume_yes=False):
        """Ask a yes/no question. Only a literal 'yes' counts as consent."""
        if assume_yes:
            self.output(f"{question} (yes/no): yes [--yes]", type="i")
            return True
        answer = input(f"{question} (yes/no): ").strip().lower()
        if self.logfile:
            self._log(self.logfile, f"{question} -> {answer}")
        return answer == "yes"

    def countdown(self, message, seconds, sleep=time.sleep):
        for i in range(seconds, 0, -1):
            print(f"\r{message} in {i} seconds...", end="", flush=True)
            sleep(1)
        print()
