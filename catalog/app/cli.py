import argparse
import os
import sys
from typing import Callable, List, Optional

from .client import ProductClient, ProductPage, describe_error, validate_form
from .errors import CatalogError, ValidationError
from .logging_setup import setup_logging
from .schemas import ProductOut

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_INVALID_INPUT = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="catalog-cli", description="Browse and edit the product catalog.")
    p.add_argument(
        "--api-url",
        default=os.getenv("CATALOG_API_URL", "http://localhost:5000/api"),
        help="Catalog API base URL (default: $CATALOG_API_URL or http://localhost:5000/api).",
    )
    p.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING).")

    sub = p.add_subparsers(dest="cmd", required=True)

    list_p = sub.add_parser("list", help="List products.")
    list_p.add_argument("--search", "-s", default="", help="Match name or description.")
    list_p.add_argument("--page", type=int, default=1, help="Page number (default: 1).")
    list_p.add_argument("--page-size", dest="page_size", type=int, default=10, help="Products per page (default: 10).")

    show_p = sub.add_parser("show", help="Show one product.")
    show_p.add_argument("id", type=int)

    create_p = sub.add_parser("create", help="Create a product.")
    create_p.add_argument("--name", required=True)
    create_p.add_argument("--description", required=True)
    create_p.add_argument("--price", required=True)
    create_p.add_argument("--image", default=None, help="Image URL.")

    edit_p = sub.add_parser("edit", help="Edit a product; omitted fields keep their value.")
    edit_p.add_argument("id", type=int)
    edit_p.add_argument("--name", default=None)
    edit_p.add_argument("--description", default=None)
    edit_p.add_argument("--price", default=None)
    edit_p.add_argument("--image", default=None, help="Image URL; pass an empty string to clear it.")

    delete_p = sub.add_parser("delete", help="Delete a product.")
    delete_p.add_argument("id", type=int)
    delete_p.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation.")

    return p


def _format_product(p: ProductOut) -> str:
    lines = [
        f"#{p.id} {p.name}",
        f"  {p.description}",
        f"  price:   ${p.price:.2f}",
    ]
    if p.image:
        lines.append(f"  image:   {p.image}")
    lines.append(f"  created: {p.created_at.isoformat()}")
    lines.append(f"  updated: {p.updated_at.isoformat()}")
    return "\n".join(lines)


def _format_page(page: ProductPage, search: str) -> str:
    if not page.products:
        return f'No products found matching "{search}".' if search else "No products found."
    total_pages = max(1, -(-page.total_count // page.page_size))
    rows = [f"{p.id:>5}  {p.name:<30.30}  ${p.price:>10.2f}" for p in page.products]
    rows.append(f"Page {page.page} of {total_pages} ({page.total_count} products)")
    return "\n".join(rows)


def _print_invalid(err: ValidationError) -> None:
    for field, messages in err.errors.items():
        for msg in messages:
            print(f"{field}: {msg}", file=sys.stderr)


def _cmd_list(client: ProductClient, args) -> int:
    page = client.get_products(search=args.search, page=args.page, page_size=args.page_size)
    print(_format_page(page, args.search))
    return EXIT_OK


def _cmd_show(client: ProductClient, args) -> int:
    print(_format_product(client.get_product(args.id)))
    return EXIT_OK


def _cmd_create(client: ProductClient, args) -> int:
    form = validate_form(name=args.name, description=args.description, price=args.price, image=args.image)
    created = client.create_product(form)
    print(f"Created product #{created.id}")
    print(_format_product(created))
    return EXIT_OK


def _cmd_edit(client: ProductClient, args) -> int:
    current = client.get_product(args.id)
    form = validate_form(
        name=args.name if args.name is not None else current.name,
        description=args.description if args.description is not None else current.description,
        price=args.price if args.price is not None else float(current.price),
        image=args.image if args.image is not None else current.image,
    )
    updated = client.update_product(args.id, form)
    print(f"Updated product #{updated.id}")
    print(_format_product(updated))
    return EXIT_OK


def _cmd_delete(client: ProductClient, args, confirm: Callable[[str], str]) -> int:
    if not args.yes:
        answer = confirm(f"Delete product #{args.id}? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Cancelled.")
            return EXIT_OK
    print(client.delete_product(args.id))
    return EXIT_OK


def main(
    argv: Optional[List[str]] = None,
    client: Optional[ProductClient] = None,
    confirm: Callable[[str], str] = input,
) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    owns_client = client is None
    if client is None:
        client = ProductClient(args.api_url)

    try:
        if args.cmd == "list":
            return _cmd_list(client, args)
        if args.cmd == "show":
            return _cmd_show(client, args)
        if args.cmd == "create":
            return _cmd_create(client, args)
        if args.cmd == "edit":
            return _cmd_edit(client, args)
        if args.cmd == "delete":
            return _cmd_delete(client, args, confirm)
        return EXIT_INVALID_INPUT
    except ValidationError as err:
        _print_invalid(err)
        return EXIT_INVALID_INPUT
    except CatalogError as err:
        print(f"Error: {describe_error(err)}", file=sys.stderr)
        return EXIT_API_ERROR
    finally:
        if owns_client:
            client.close()


if __name__ == "__main__":
    sys.exit(main())
