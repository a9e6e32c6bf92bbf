"""Operations CLI for the assessment engine."""

import asyncio
import logging
import sys
from uuid import UUID

import click

from assessment_engine.core.app_exceptions import AppError
from assessment_engine.core.config import settings
from assessment_engine.core.logging import setup_logging
from assessment_engine.db.engine import create_db_engine
from assessment_engine.db.session import create_session_factory, init_models
from assessment_engine.learning_engine.config import get_engine_params
from assessment_engine.learning_engine.generator.service import get_session_questions
from assessment_engine.learning_engine.history.service import get_history_summary, reset_retired_questions
from assessment_engine.learning_engine.priority.service import recalculate_all, top_priorities

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        click.echo(f"Invalid id: {value}", err=True)
        sys.exit(2)


async def _with_db(database_url: str, work):
    engine = create_db_engine(database_url)
    try:
        async with create_session_factory(engine)() as db:
            return await work(db)
    finally:
        await engine.dispose()


@click.group()
@click.option(
    "--database-url",
    envvar="DATABASE_URL",
    default=settings.DATABASE_URL,
    show_default=False,
    help="SQLAlchemy async database URL",
)
@click.pass_context
def cli(ctx: click.Context, database_url: str):
    """Adaptive assessment engine operations."""
    setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create all tables."""

    async def run():
        engine = create_db_engine(ctx.obj["database_url"])
        try:
            await init_models(engine)
        finally:
            await engine.dispose()

    asyncio.run(run())
    click.echo("Tables created")


@cli.command("recalc-priorities")
@click.argument("learner_id")
@click.pass_context
def recalc_priorities(ctx: click.Context, learner_id: str):
    """Recompute the category priority cache of a learner."""
    learner = _parse_uuid(learner_id)

    async def work(db):
        computed = await recalculate_all(db, learner, params=get_engine_params())
        await db.commit()
        return computed

    computed = asyncio.run(_with_db(ctx.obj["database_url"], work))
    click.echo(f"Recomputed {len(computed)} categories for learner {learner}")


@cli.command("top-priorities")
@click.argument("learner_id")
@click.option("-n", "--limit", type=int, default=3, show_default=True, help="Categories to show")
@click.pass_context
def show_top_priorities(ctx: click.Context, learner_id: str, limit: int):
    """Show the highest-weight categories of a learner."""
    learner = _parse_uuid(learner_id)

    async def work(db):
        return await top_priorities(db, learner, limit)

    rows = asyncio.run(_with_db(ctx.obj["database_url"], work))

    click.echo(f"{'Category':<10} {'Name':<30} {'Weight':<8} {'Needed':<8} {'Rating':<8}")
    click.echo("-" * 68)
    for row in rows:
        rating = f"{row['rating']:.0f}" if row["rating"] is not None else "-"
        click.echo(
            f"{row['category_id']:<10} {row['category_name']:<30} "
            f"{row['selection_weight']:<8.2f} {row['questions_needed']:<8} {rating:<8}"
        )


@cli.command("reset-retired")
@click.argument("learner_id")
@click.option("--category-id", type=int, default=None, help="Only reset this category")
@click.pass_context
def reset_retired(ctx: click.Context, learner_id: str, category_id: int | None):
    """Return a learner's retired questions to the selection pool."""
    learner = _parse_uuid(learner_id)

    async def work(db):
        reset = await reset_retired_questions(db, learner, category_id=category_id)
        await recalculate_all(db, learner, params=get_engine_params())
        await db.commit()
        return reset

    reset = asyncio.run(_with_db(ctx.obj["database_url"], work))
    click.echo(f"Reset {reset} retired questions for learner {learner}")


@cli.command("history-summary")
@click.argument("learner_id")
@click.pass_context
def history_summary(ctx: click.Context, learner_id: str):
    """Show seen, correct, mastered and queued totals of a learner."""
    learner = _parse_uuid(learner_id)

    async def work(db):
        return await get_history_summary(db, learner)

    summary = asyncio.run(_with_db(ctx.obj["database_url"], work))
    click.echo(f"Seen:      {summary.total_questions_seen}")
    click.echo(f"Correct:   {summary.total_correct}")
    click.echo(f"Incorrect: {summary.total_incorrect}")
    click.echo(f"Mastered:  {summary.questions_mastered}")
    click.echo(f"Queued:    {summary.questions_in_queue}")


@cli.command("session-questions")
@click.argument("session_id")
@click.pass_context
def session_questions(ctx: click.Context, session_id: str):
    """List the ordered questions of a session."""
    session = _parse_uuid(session_id)

    async def work(db):
        return await get_session_questions(db, session)

    try:
        questions = asyncio.run(_with_db(ctx.obj["database_url"], work))
    except AppError as e:
        click.echo(f"{e.code}: {e.message}", err=True)
        sys.exit(1)

    for q in questions:
        click.echo(f"{q.position:>3}  {q.question_id}  cat={q.category_id}  rating={q.question_rating:.0f}")


if __name__ == "__main__":
    cli()
