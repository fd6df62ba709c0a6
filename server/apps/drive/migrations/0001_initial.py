import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import server.apps.drive.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='StorageAccount',
            fields=[
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='storage_account', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('can_create', models.BooleanField(default=True)),
                ('can_read', models.BooleanField(default=False)),
                ('can_write', models.BooleanField(default=True)),
                ('quota_bytes', models.BigIntegerField(default=server.apps.drive.models.default_quota_bytes, help_text='Storage quota limit in bytes')),
                ('used_bytes', models.BigIntegerField(default=0, help_text='Cached usage, reconciled from file records')),
            ],
            options={
                'verbose_name': 'Storage Account',
                'verbose_name_plural': 'Storage Accounts',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quota_bytes__gte', 0)), name='account_quota_bytes_non_negative'),
                    models.CheckConstraint(condition=models.Q(('used_bytes__gte', 0)), name='account_used_bytes_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Folder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('full_path', models.CharField(help_text='Path from root, e.g. /Documents/Photos', max_length=1024)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='folders', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='subfolders', to='drive.folder')),
            ],
            options={
                'verbose_name': 'Folder',
                'verbose_name_plural': 'Folders',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['owner', 'full_path'], name='folders_owner_path_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('owner', 'parent', 'name'), name='folders_owner_parent_name_unique'),
                    models.UniqueConstraint(condition=models.Q(('parent__isnull', True)), fields=('owner', 'name'), name='folders_owner_root_name_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='File',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_name', models.CharField(max_length=255)),
                ('object_key', models.CharField(help_text='Key in storage: user-{id}/folder/name_ts_rand.ext', max_length=1024, unique=True)),
                ('original_name', models.CharField(blank=True, default='', max_length=255)),
                ('file_size', models.BigIntegerField(help_text='File size in bytes')),
                ('content_type', models.CharField(blank=True, default='', max_length=255)),
                ('uploaded_at', models.DateTimeField(auto_now_add=True)),
                ('last_modified', models.DateTimeField(auto_now=True)),
                ('is_public', models.BooleanField(default=False)),
                ('public_token', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('public_token_created_at', models.DateTimeField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('original_folder_id', models.BigIntegerField(blank=True, null=True)),
                ('upload_session_id', models.CharField(blank=True, default='', max_length=64)),
                ('upload_progress', models.BigIntegerField(default=0)),
                ('upload_status', models.CharField(choices=[('PENDING', 'Pending'), ('UPLOADING', 'Uploading'), ('COMPLETED', 'Completed'), ('FAILED', 'Failed')], default='PENDING', max_length=16)),
                ('folder', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='files', to='drive.folder')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='files', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['-uploaded_at'],
                'indexes': [
                    models.Index(fields=['owner', 'folder', '-uploaded_at'], name='files_owner_folder_recent_idx'),
                    models.Index(fields=['owner', 'upload_status'], name='files_owner_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('file_size__gt', 0)), name='files_file_size_positive'),
                ],
            },
        ),
    ]
