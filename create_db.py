# create_db.py
import argparse
import asyncio
import dataclasses
import logging
import sys

from config import StoreSettings
from database.durable import FileStore
from database.codec import snapshot_kind
from database.errors import CorruptSnapshot
from database.facade import PersistenceFacade


async def cmd_init(db: PersistenceFacade, args) -> int:
    """Crée le schéma (ou recharge le snapshot) et l'écrit sur disque."""
    await db.ready()
    ok = await db.save()
    print(f"✅ Store initialisé ({db.mode})" if ok else f"❌ Écriture impossible : {db.last_snapshot_error}")
    if db.fallback_reason:
        print(f"   mode dégradé : {db.fallback_reason}")
    return 0 if ok else 1


async def cmd_export(db: PersistenceFacade, args) -> int:
    blob = await db.export_snapshot()
    with open(args.path, "wb") as f:
        f.write(blob)
    print(f"✅ {len(blob)} octets exportés vers {args.path}")
    return 0


async def cmd_import(db: PersistenceFacade, args) -> int:
    with open(args.path, "rb") as f:
        blob = f.read()
    try:
        await db.import_snapshot(blob)
    except CorruptSnapshot as e:
        print(f"❌ Snapshot illisible : {e}")
        return 1
    await db.flush()
    print(f"✅ Store remplacé depuis {args.path} (format {snapshot_kind(blob)})")
    return 0


async def cmd_backup(db: PersistenceFacade, args) -> int:
    ok = await db.backup()
    print("✅ Sauvegarde écrite" if ok else f"❌ Sauvegarde échouée : {db.last_snapshot_error}")
    return 0 if ok else 1


async def cmd_restore(db: PersistenceFacade, args) -> int:
    if not await db.restore_backup():
        print("ℹ️ Aucune sauvegarde disponible")
        return 1
    await db.flush()
    print("✅ Store restauré depuis la sauvegarde")
    return 0


async def cmd_check(db: PersistenceFacade, args) -> int:
    bad = await db.verify_counters()
    for post_id, (stored, real) in sorted(bad.items()):
        print(f"⚠️ post #{post_id}: likes_count={stored}, likes={real}")
    print(f"mode={db.mode} posts_incohérents={len(bad)}")
    return 1 if bad else 0


COMMANDS = {
    "init": cmd_init,
    "export": cmd_export,
    "import": cmd_import,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "check": cmd_check,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="RokLearn store maintenance")
    ap.add_argument("--store-dir", help="durable store directory (default: STORE_DIR)")
    ap.add_argument("--fallback", action="store_true", help="skip the relational engine")
    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="create the schema and write a first snapshot")
    sub.add_parser("export", help="write the current snapshot to a file").add_argument("path")
    sub.add_parser("import", help="replace the store with a snapshot file").add_argument("path")
    sub.add_parser("backup", help="copy the store to the backup slot")
    sub.add_parser("restore", help="replace the store with the backup slot")
    sub.add_parser("check", help="verify like counters")
    return ap


async def run(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = StoreSettings(backup_enabled=False)
    if args.store_dir:
        settings = dataclasses.replace(settings, store_dir=args.store_dir)
    if args.fallback:
        settings = dataclasses.replace(settings, db_engine="fallback")

    async with PersistenceFacade(FileStore(settings.store_dir), settings) as db:
        return await COMMANDS[args.command](db, args)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
