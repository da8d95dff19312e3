"""Key-value storage backends used for sessions and diagnostics."""
