"""
GraphQL Schema
Combines queries and mutations into the main schema
"""
import strawberry
from wishlist.graphql.queries import Query
from wishlist.graphql.mutations import Mutation


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
)
