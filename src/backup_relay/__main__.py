from .cli import run_backup

if __name__ == "__main__":  # pragma: no cover
    run_backup(prog_name="backup_relay")
