documents_sql = """
create table documents (
  path text primary key,

  -- path of the parent node, used for ordered child queries
  parent text not null,

  value jsonb not null,

  updated_at timestamptz not null default now()
);

create index documents_parent_idx on documents (parent);
"""

merge_document_sql = """
create or replace function merge_document(p_path text, p_parent text, p_fields jsonb)
returns void as $$
  insert into documents (path, parent, value)
  values (p_path, p_parent, jsonb_strip_nulls(p_fields))
  on conflict (path) do update
    set value = jsonb_strip_nulls(
          case
            when jsonb_typeof(documents.value) = 'object' then documents.value || excluded.value
            else excluded.value
          end
        ),
        updated_at = now();
$$ language sql;
"""
