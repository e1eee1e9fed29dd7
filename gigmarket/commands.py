import click
from flask.cli import AppGroup
from gigmarket.services.order_service import find_overdue_orders
from gigmarket.services.rating_service import rebuild_all_ratings

ratings_cli = AppGroup("ratings", help="Maintain cached gig and seller ratings.")
orders_cli = AppGroup("orders", help="Inspect orders.")


@ratings_cli.command("rebuild")
def rebuild_ratings():
    """Recompute every gig and seller rating from published reviews."""
    result = rebuild_all_ratings()
    click.echo(f"Rebuilt ratings for {result['gigs']} gig(s) and {result['sellers']} seller(s).")
    if result["failed"]:
        click.echo(f"Failed: {', '.join(result['failed'])}", err=True)
        raise SystemExit(1)


@orders_cli.command("overdue")
@click.option("--limit", type=int, default=200, show_default=True, help="Maximum number of orders to list.")
def list_overdue(limit):
    """List active orders past their due date."""
    orders = find_overdue_orders()[:limit]
    for order in orders:
        click.echo(f"{order.id}\t{order.status}\tdue {order.due_date.isoformat()}Z\tseller {order.seller_id}")
    click.echo(f"{len(orders)} overdue order(s).")
