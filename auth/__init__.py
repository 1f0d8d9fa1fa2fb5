"""auth/ -- Identity and access package for Cash Cow.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or livestock/.
api/ imports from auth/, not the other way around.
"""
