"""
Linha de comando do GTFS DB.

Exatamente uma ação principal por invocação:

    gtfsdb --load feed.zip -d postgresql+psycopg2://localhost/gtfs
    gtfsdb --validate abcde_fghijklmno
    gtfsdb --snapshot abcde_fghijklmno
    gtfsdb --export abcde_fghijklmno --outFile out.zip
    gtfsdb --delete abcde_fghijklmno

Invocação inválida imprime a ajuda e sai com status 2 sem tocar no banco.
Erros fatais da operação saem com status 1.
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from .common.config import get_config
from .common.exceptions import GTFSStoreException, handle_exception
from .common.logging_config import get_logger, setup_logging
from . import gtfs

logger = get_logger(__name__)

ACTIONS = ("load", "validate", "snapshot", "export", "delete")


class HelpOnErrorParser(argparse.ArgumentParser):
    """ArgumentParser que imprime a ajuda completa em erros de uso."""

    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(2, f"\n{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = HelpOnErrorParser(
        prog="gtfsdb",
        description="Carrega, valida, copia, exporta e remove feeds GTFS em namespaces SQL",
    )

    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--load", metavar="FILE", help="Carrega um zip GTFS em um namespace novo")
    actions.add_argument("--validate", metavar="NAMESPACE", help="Valida um namespace")
    actions.add_argument("--snapshot", metavar="NAMESPACE", help="Cria um snapshot de edição")
    actions.add_argument("--export", metavar="NAMESPACE", help="Exporta um namespace para zip")
    actions.add_argument("--delete", metavar="NAMESPACE", help="Remove um namespace")

    parser.add_argument("-d", "--database", help="URL do banco (padrão: DATABASE_URL)")
    parser.add_argument("-u", "--user", help="Usuário do banco")
    parser.add_argument("-p", "--password", help="Senha do banco")
    parser.add_argument("--outFile", dest="out_file", metavar="FILE", help="Zip de saída do --export")
    parser.add_argument(
        "--fromEditor",
        dest="from_editor",
        action="store_true",
        help="Exporta a partir de um snapshot de edição",
    )
    parser.add_argument("--json", dest="json_file", metavar="FILE", help="Grava o resultado em JSON")
    parser.add_argument("--log-level", default=None, help="Nível de log (padrão: LOG_LEVEL)")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.action = next(action for action in ACTIONS if getattr(args, action) is not None)
    if not getattr(args, args.action):
        parser.error(f"argument --{args.action}: expected a non-empty value")
    if args.action == "export" and not args.out_file:
        parser.error("--export requires --outFile")
    return args


def run_action(args: argparse.Namespace, engine) -> Dict[str, Any]:
    """Executa a ação escolhida e retorna o resumo serializável."""
    if args.action == "load":
        return gtfs.load(args.load, engine).to_dict()
    if args.action == "validate":
        return gtfs.validate(args.validate, engine).to_dict()
    if args.action == "snapshot":
        return gtfs.make_snapshot(args.snapshot, engine).to_dict()
    if args.action == "export":
        return gtfs.export(args.export, args.out_file, engine, args.from_editor).to_dict()
    gtfs.delete(args.delete, engine)
    return {"namespace": args.delete, "deleted": True}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    config = get_config()
    setup_logging(log_level=args.log_level or config.LOG_LEVEL, log_format=config.LOG_FORMAT)

    try:
        engine = gtfs.create_data_source(args.database, args.user, args.password)
        summary = run_action(args, engine)
    except GTFSStoreException as e:
        handle_exception(e, logger, {"action": args.action})
        return 1

    if args.json_file:
        with open(args.json_file, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, default=str)

    namespace = summary.get("namespace")
    print(f"{args.action} completed: {namespace}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
