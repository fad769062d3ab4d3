# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   user_service      — registration, credentials, profile, activation
#   category_service  — admin-managed categories and their stats
#   post_service      — post CRUD, listing, search and view counting
#   comment_service   — append-only comments on posts
#   counters          — post_count maintenance on users and categories
#
# All service functions accept an AsyncSession as their first argument.
# Plain writes only flush and leave the commit to the ``get_db``
# dependency; post create/delete commit the post first so the follow-up
# counter updates cannot undo it.
