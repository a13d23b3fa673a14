"""Model layer: collection CRUD, the shared record predicate and update application."""
